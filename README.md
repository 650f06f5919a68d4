# metrical

A small metrics agent. It polls process memory and garbage-collector
statistics on a fixed interval and reports them to a metrics server over
HTTP. Each metric is sent as a single gzip-compressed JSON document, POSTed to
`<server>/update`. The package also has helpers that parse and check the
settings of a metrics server.

## Installation

```
pip install .
```

## Running the agent

```
metrical-agent -a localhost:8080 -p 2 -r 10
```

| Flag | Environment variable | Default                 | Meaning                    |
|------|----------------------|-------------------------|----------------------------|
| `-a` | `ADDRESS`            | `http://localhost:8080` | Server endpoint address    |
| `-p` | `POLL_INTERVAL`      | `2`                     | Poll interval in seconds   |
| `-r` | `REPORT_INTERVAL`    | `10`                    | Report interval in seconds |
| `-v` |                      | off                     | Verbose logging            |

Priority rules:

- `ADDRESS` wins over `-a` whenever it is set, even when it is empty.
- `POLL_INTERVAL` and `REPORT_INTERVAL` win over their flags only when they hold a valid integer.
- If the address has no scheme, `http://` is added before sending.

The command exits with status 1 in these cases:

- a positional argument is given;
- an interval is zero or negative;
- the address is empty.

The agent runs until it receives SIGINT or SIGTERM. It then stops its polling
and reporting loops and exits with status 0.

## What is collected

Each poll calls `Agent.collect_metrics()`, which fills in:

- 27 gauges named after memory statistics: `Alloc`, `HeapAlloc`, `NumGC`,
  `GCCPUFraction`, `Sys` and the rest (see `metrical.metrics.RUNTIME_GAUGE_NAMES`).
  `metrical.metrics.read_mem_stats()` takes their values from `gc`, from
  `tracemalloc` (which reports non-zero values only while tracing is active)
  and, where the `resource` module exists, from the maximum resident set size.
  A statistic that has no counterpart in the interpreter is reported as `0`;
- a `RandomValue` gauge in the range [0, 1);
- a `PollCount` counter that goes up by one on every poll.

Gauges replace their previous value. Counters accumulate.

## Delivery and retries

By default the agent sends requests through a `RetryHTTPClient`. That client
wraps a `UrllibHTTPClient` and makes at most two attempts, 0.1 s apart.

- A network failure (`RequestError` or `OSError`) is retried.
- A 5xx status is retried.
- Any other status that is not 200 fails at once. The error message includes
  the status and the first 1 KiB of the response body.

`Agent.send_metrics()` sends every metric. It returns a `(sent, failed)` pair
and logs a summary. Individual failures are logged only when verbose logging
is on.

## Using it as a library

```python
from metrical.agent import Agent
from metrical.agent_config import AgentConfig

config = AgentConfig.with_url("http://localhost:9090")
config.validate()  # raises ConfigError if a setting is invalid

agent = Agent(config)
agent.collect_metrics()
sent, failed = agent.send_metrics()
```

`Agent` accepts an optional `http_client`. This can be any object with
`do(request)` and `post(url, content_type, body)` methods, as described by
`metrical.http_client.HTTPClient`.

For long-running use, call `agent.run()`, which blocks, and call
`agent.stop()` from another thread to end it.

Helpers for building and sending metrics:

- `Agent.prepare_metric_json()` turns a float into a gauge `Metric` and an
  int into a counter `Metric`. Any other type raises `TypeError`.
- `Metric.to_dict()` and `Metric.from_dict()` convert to and from the JSON
  form `{"id", "type", "delta", "value"}`.

## Server settings

`metrical.server_cli.parse_flags(argv)` reads these settings:

| Flag              | Environment variable | Default                |
|-------------------|----------------------|------------------------|
| `-a`, `--address` | `ADDRESS`            | `localhost:8080`       |
| `-i`, `--interval`| `STORE_INTERVAL`     | `300`                  |
| `-f`, `--file`    | `FILE_STORAGE_PATH`  | `/tmp/metrics-db.json` |
| `-r`, `--restore` | `RESTORE`            | `true`                 |

A non-empty, valid environment value wins over the flag. `parse_flags`
returns a `ServerConfig` and raises an exception instead in these cases:

| Condition                          | Exception               |
|------------------------------------|-------------------------|
| `-h` or `--help` is given          | `HelpRequestedError`    |
| `-v` or `--version` is given       | `VersionRequestedError` |
| a positional argument is given     | `UnknownArgumentsError` |
| the address does not validate      | `InvalidAddressError`   |

The module also provides:

- `validate_address(addr)` accepts `host:port`, `[ipv6]:port`, `:port` or a
  bare port, and returns the port number. Otherwise it raises
  `InvalidAddressError`.
- `handle_error(err)` logs an error and returns the exit status it calls for:
  `0` for a help or version request, `1` for anything else, and `None` when
  there is no error.

`metrical.app_config.new_config(addr, store_interval, file_storage_path, restore)`
builds an `AppConfig`. It splits the address at its first colon; an address
with no colon is taken as a port on `localhost`. `AppConfig.address` gives the
`host:port` string back.

## What this package does not do

The package contains no metrics server. Nothing here accepts the metrics the
agent sends, stores them, writes them to the storage file or serves them
back. The server settings above can be parsed and checked, but there is no
command that starts a server with them. Only `metrical-agent` is installed.