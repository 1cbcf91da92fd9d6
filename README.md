# pactkit

Building blocks for consumer-driven contract testing with Pact-style
contracts. Pure Python, standard library only.

## Modules

- **`pactkit.matchers`** – matchers that serialise to the Pact matching-rule
  JSON format: `like`, `each_like` (alias `array_min_like`), `term` (alias
  `regex`), `integer`, `decimal`, `equality`, `includes`,
  `from_provider_state`, `each_key_like`, `array_containing`,
  `array_min_max_like`, `array_max_like`, `date_generated`,
  `time_generated`, `date_time_generated`, and ready-made matchers
  `hex_value()`, `identifier()`, `ip_address()`, `ipv4_address()`,
  `ipv6_address()`, `timestamp()`, `date()`, `time_of_day()` and
  `uuid_value()`. Every matcher has `get_value()` (the plain example) and
  `to_json()`; the module-level `to_json()` serialises whole structures that
  contain matchers. `StructMatcher` is a dict whose values may be matchers,
  `String` wraps a plain string, and `MapMatcher.from_json()` reads a JSON
  object of strings.
- **`match_v2`** derives a matcher tree from a type: `str`, `int`, `float`,
  `bool`, lists/tuples/sets, `Optional[...]` and dataclasses. Dataclass
  fields may carry `metadata={"json": "name"}` to rename the key and
  `metadata={"pact": ...}` to set examples: `"min=2"` for sequences,
  `"example=42"` for numbers and booleans,
  `"example=2000-01-01,regex=^\\d{4}-\\d{2}-\\d{2}$"` for strings.
  A malformed tag raises `InvalidPactTagError`; an unsupported type raises
  `TypeError`.
- **`pactkit.models`** – `SpecificationVersion` (V2, V3, V4) and
  `ProviderState` with `to_dict()` / `from_dict()`.
- **`pactkit.message`** – `create_message_handler(handlers)` returns WSGI
  middleware that answers POSTs to `/__messages`: it looks up the handler by
  the request's `description`, calls it with the provider states, and returns
  the body (bytes as-is, anything else as JSON) with the metadata encoded as
  base64 JSON in the `PACT_MESSAGE_METADATA` and `Pact-Message-Metadata`
  headers. Unknown descriptions give 404, unparsable requests 400, failing
  handlers 503.
- **`pactkit.provider`** – `ConsumerVersionSelector` and
  `UntypedConsumerVersionSelector`, `Transport`, and WSGI middleware for
  provider state requests on `/__setup`: `state_handler_middleware` runs the
  handler named by the request's state (returning its values as JSON) and the
  after-each hook on teardown; `before_each_middleware` runs a hook on setup.
  `get_state_from_request` parses a state change body, and `wait_for_port`
  waits for a port to accept connections, raising `TimeoutError`.
- **`pactkit.proxy`** – a WSGI `ReverseProxy` with composable middleware:
  `chain_handlers` (first given is outermost), `logging_middleware`,
  `single_joining_slash`, `create_proxy`, and `http_reverse_proxy(Options)`,
  which starts the proxy in a background thread and returns its port.
  Paths under `Options.internal_request_path_prefix` are sent to localhost
  instead of the target.
- **`pactkit.ports`** – `get_free_port()`, `check_port(port)` and
  `find_port_in_range(spec)` with specs such as `"8081"`, `"8081,8085"` or
  `"8081-8085"`; failures raise `PortError`.
- **`pactkit.jsonutil`** – `format_json_string`, `format_json_object` and
  `is_json_formatted_object`.
- **`pactkit.log`** – `set_log_level`, `log_level` and `LogLevel`. On import
  the level is read from `PACT_LOG_LEVEL`, then `LOG_LEVEL`, defaulting to
  `INFO`. Messages go to the `pactkit` logger.

## Example

```python
from pactkit.matchers import each_like, like, term, to_json, StructMatcher

body = each_like(
    StructMatcher({"id": like(10), "colour": term("red", "red|green")}),
    1,
)
print(to_json(body))
```

Prints:

```json
{"pact:matcher:type": "type", "value": [{"id": {"specification": "2.0.0", "pact:matcher:type": "type", "value": 10}, "colour": {"pact:matcher:type": "regex", "value": "red", "regex": "red|green"}}], "min": 1}
```

## What it does not do

pactkit has no command-line tool. It does not run a mock server for
consumer tests, does not write pact files, and does not itself verify a
provider against pact files or talk to a broker: it supplies the matchers,
middleware, proxy and port helpers that such a verification setup is built
from.

## Running the tests

```
pip install -e ".[test]"
pytest
```