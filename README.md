# kamalproxy

Building blocks for an HTTP proxy that deploys applications without downtime.

Handlers throughout the package are plain callables taking a response writer
and a request: `handler(writer, request)`. Middlewares wrap another handler and
are themselves handlers.

| Module | What it provides |
| --- | --- |
| `kamalproxy.httpkit` | `Headers`, `Request`, `ResponseRecorder`, `http_error`, `status_text`, and the `RequestIDMiddleware` and `RequestStartMiddleware` |
| `kamalproxy.buffer` | `Buffer`, `buffered_reader`, `BufferPool` and the buffer errors |
| `kamalproxy.buffering` | `RequestBufferMiddleware`, `ResponseBufferMiddleware`, `BufferedResponseWriter` |
| `kamalproxy.errorpages` | `ErrorPageMiddleware`, `set_error_response` |
| `kamalproxy.requestlog` | `LoggingMiddleware`, `LoggingRequestContext`, `logging_request_context`, `JSONFormatter` |
| `kamalproxy.pause` | `PauseController`, `PauseState`, `PauseWaitAction` |
| `kamalproxy.rollout` | `RolloutController` |
| `kamalproxy.healthcheck` | `HealthCheck` and its errors |
| `kamalproxy.cert` | `StaticCertManager`, `CertificateLoadError` |
| `kamalproxy.metrics` | `normalize_method`, `NullTracker`, `MemoryTracker`, `enable`, `get_tracker` |
| `kamalproxy.config` | `Config` with the socket, state and certificate paths |
| `kamalproxy.cli` | `Table`, `service_table`, `find_env`, `get_env_int`, `get_env_bool` |
| `kamalproxy.upstream` | an example application server |

## Installation

```
pip install kamalproxy
```

Python 3.10 or later is required. The only dependency is `jinja2`, used for
error page templates.

## Usage

### Requests and responses

`Request` parses its URL into `host`, `path` and `query`; a `bytes` body sets
`content_length`. `ResponseRecorder` keeps the status code, headers and body
written to it.

```python
from kamalproxy.httpkit import Request, ResponseRecorder, RequestIDMiddleware

def app(writer, request):
    writer.write(request.headers.get("X-Request-ID").encode())

recorder = ResponseRecorder()
RequestIDMiddleware(app)(recorder, Request("GET", "http://app.example.com/"))
print(recorder.code, recorder.text)
```

`RequestIDMiddleware` sets a random UUID in `X-Request-ID` and
`RequestStartMiddleware` sets `X-Request-Start: t=<unix milliseconds>`; both
leave a header that is already present alone.

### Buffering

`buffered_reader` reads a stream completely, keeping up to `max_mem_bytes` in
memory and the rest in a temporary file that is removed on `close()`. A
`max_bytes` of zero means no limit; going past a non-zero limit raises
`MaximumSizeExceededError`. Writing after reading raises `WriteAfterReadError`.

```python
import io
from kamalproxy.buffer import buffered_reader, MaximumSizeExceededError

with buffered_reader(io.BytesIO(b"Hello, World!"), 2048, 5) as body:
    print(body.read(-1))

try:
    buffered_reader(io.BytesIO(b"Hello, World!"), 8, 5)
except MaximumSizeExceededError:
    print("too large")
```

`RequestBufferMiddleware(max_mem_bytes, max_bytes, app)` answers 413
"Request too large" when the body is over the limit.
`ResponseBufferMiddleware(max_mem_bytes, max_bytes, app)` holds the response
until the handler returns and answers 500 when it overflows; responses with a
`text/event-stream` content type or `Transfer-Encoding: chunked` are passed
through unbuffered, and flushes reach the client only for those.

### Error pages

`ErrorPageMiddleware(pages, root, app)` takes a directory, or a mapping of file
names to template text, of `<status>.html` Jinja templates. A handler calls
`set_error_response(writer, request, status, arguments)`; the middleware then
renders the matching template with the arguments (a mapping, named tuple or
object). Without a template, a nested middleware (`root=False`) leaves the
response to its parent, and the root one writes `<h1>404 Not Found</h1>`.
Templates that are missing or do not compile raise
`ErrorPagesUnavailableError`.

### Request logging

`LoggingMiddleware(logger, http_port, https_port, app)` logs one `Request`
record per request, with its fields (host, port, path, status, duration in
nanoseconds, content lengths and types, client and remote addresses, and more)
attached to the record. `JSONFormatter` writes such records as JSON lines.
Handlers can add the service, target and extra headers to log through
`logging_request_context(request)`. Each request is also passed to the current
metrics tracker.

### Pausing a service

A `PauseController` starts running. While paused, `wait()` blocks until the
service is resumed or stopped, or until `fail_after` seconds pass.

```python
from kamalproxy.pause import PauseController, PauseWaitAction

controller = PauseController()
controller.stop("Back in 15 mins!")
action, message = controller.wait()
assert action is PauseWaitAction.STOPPED
```

`to_dict()` and `PauseController.from_dict(...)` save and restore the state,
with `fail_after` stored in nanoseconds.

### Rollouts

A request with a `kamal-rollout` cookie belongs to the rollout group when the
cookie value is in the allowlist, or when its FNV-1a hash falls within the
percentage. A request without the cookie never does.

```python
from kamalproxy.httpkit import Request
from kamalproxy.rollout import RolloutController

rollout = RolloutController(10, ["00001", "00002"])
request = Request(headers={"Cookie": "kamal-rollout=00001"})
assert rollout.request_uses_rollout_group(request)
```

### Health checks

`HealthCheck(consumer, url, interval, timeout)` requests the URL at once and
then every `interval` seconds in a background thread, calling
`consumer.health_check_completed(success)` each time; only 2xx answers count as
healthy. `close()` stops it.

### Certificates

`StaticCertManager(certificate_path, private_key_path)` loads a PEM pair into
an `ssl.SSLContext`, returned by `get_certificate(...)`, and raises
`CertificateLoadError` when the pair cannot be loaded.

### Metrics

Tracking does nothing until `enable()` is called. `enable()` installs a
`MemoryTracker` and returns a handler that serves its `render()` output in
Prometheus text format. `normalize_method` folds non-standard methods into
`OTHER`.

```python
from kamalproxy.metrics import enable, get_tracker, normalize_method

enable()
get_tracker().track_request("myapp", "GET", 200, 0.05)
print(get_tracker().render())
print(normalize_method("CUSTOM"))  # OTHER
```

### Configuration and the command line helpers

`Config` holds ports and paths: `socket_path()` lies in `$XDG_RUNTIME_DIR` or
the temporary directory, and `state_path()` and `certificate_path()` in
`alternate_config_dir` or `~/.config/kamal-proxy`.

`get_env_int` and `get_env_bool` look for a `KAMAL_PROXY_`-prefixed variable
first and then the plain name, and fall back to the default when neither is
set or the value does not parse. `service_table` lays out services, sorted by
name, with their host, path, target, state and TLS setting:

```python
from kamalproxy.cli import service_table

service_table({"myapp": {"host": "app.example.com", "path": "/", "target": "upstream:3000",
                         "state": "running", "tls": False}}).print()
```

## Example upstream

A small application server for trying out deployments. It answers `/up` with
200 for health checks and greets every other request with the host named in
its `X-Kamal-Target` header, or the machine's host name:

```
kamal-proxy-upstream --port 8080
```

It listens on port 80 unless `--port` is given; `--bind` sets the address.

## What the package does not do

The package holds the parts of a proxy, not a running proxy. It has no server
that accepts client traffic and forwards it to targets, no load balancing
across targets, no command to deploy, pause, stop or remove services, no
control socket, and does not save or restore service state on disk. Metrics
are served only where the handler from `enable()` is mounted.

## Running the tests

```
pip install kamalproxy[test]
pytest
```