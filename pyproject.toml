[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "metrical"
version = "0.1.0"
description = "Metrics collection agent with retrying HTTP delivery, plus server configuration helpers"
requires-python = ">=3.10"
dependencies = []
keywords = ["metrics", "monitoring", "agent", "gauge", "counter", "telemetry"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Monitoring",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
metrical-agent = "metrical.agent_cli:main"

[tool.hatch.build.targets.wheel]
packages = ["metrical"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
