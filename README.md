# minikv

minikv is a small in-memory key-value server. It stores string values and
sorted sets, supports per-key expiry in milliseconds, and speaks a compact
length-prefixed binary protocol over TCP. A command-line client comes with it.

## Installation

```
pip install .
```

## Running the server

```
minikv-server
minikv-server --host 127.0.0.1 --port 6000
```

By default the server listens on `0.0.0.0`, port 1234. It runs a single
event loop; connections that show no activity for five seconds are closed,
and keys whose expiry has passed are deleted as the loop runs. Stop it with
Ctrl-C.

## Using the client

The client connects to `127.0.0.1:1234` (override with the `MINIKV_HOST` and
`MINIKV_PORT` environment variables), sends its arguments as one command and
prints the reply:

```
minikv-client set greeting hello
(nil)
minikv-client get greeting
(str) hello
minikv-client zadd board 10 alice
(int) 1
minikv-client zquery board 0 "" 0 10
(arr) len=2
(str) alice
(dbl) 10
(arr) end
```

Errors are printed as `(err) CODE MESSAGE`. A request whose encoded body is
longer than 4096 bytes is refused by the client before it is sent, and
replies longer than that are not read.

## Commands

| Command | Reply |
| --- | --- |
| `get KEY` | the string, or nil; an error if the key holds a sorted set |
| `set KEY VALUE` | nil; an error if the key holds a sorted set |
| `del KEY` | 1 if removed, else 0 |
| `pexpire KEY MS` | 1 if the key exists, else 0; a negative MS removes the expiry |
| `pttl KEY` | remaining ms, -1 without expiry, -2 if missing |
| `keys` | array of all keys |
| `zadd ZSET SCORE NAME` | 1 if added, 0 if the score was updated |
| `zrem ZSET NAME` | 1 if removed, else 0 |
| `zscore ZSET NAME` | the score, or nil |
| `zquery ZSET SCORE NAME OFFSET LIMIT` | name/score pairs from the first member at or after (SCORE, NAME), moved OFFSET members along, with at most LIMIT items |

Anything else, or a known command with the wrong number of arguments, gets
an "unknown command" error. Scores that are not numbers (or are NaN) and
offsets, limits or expiry times that are not integers get a "bad argument"
error. Sorted-set commands on a missing key behave as on an empty set.

## Library use

The pieces work without the network too:

```python
from minikv.store import Database
from minikv.protocol import ResponseBuffer, decode_response

with Database() as db:
    db.execute(["set", "k", "v"], ResponseBuffer())
    out = ResponseBuffer()
    db.execute(["get", "k"], out)
    print(decode_response(out.getvalue()))   # b'v'
```

- `minikv.store.Database` runs commands; `process_expired()` deletes keys
  whose expiry has passed and `next_expiry()` tells when the next one is due.
- `minikv.server.Server` is the TCP server (`serve_forever()`, `close()`).
- `minikv.client` has `send_request()` and `read_response()` for talking to a
  server over a socket.
- `minikv.protocol` encodes and decodes requests and responses
  (`encode_request`, `parse_request`, `frame`, `ResponseBuffer`,
  `decode_response`, `format_response`).
- `minikv.zset.ZSet` is a sorted set that combines a hash map with an
  order-statistic AVL tree (`minikv.avl`). `minikv.hashtable.HMap` is a hash
  map that rehashes step by step, and `minikv.heap.IndexedHeap` is a min-heap
  with keyed updates.

## Limitations

All data lives in memory only: nothing is written to disk, and everything is
lost when the server stops. There is no authentication and no replication.

## Tests

```
pip install .[test]
pytest
```