# dogewallet

The non-graphical core of a desktop wallet, as a Python library.

## What is in it

- **`dogewallet.events`**: `Signal` is a small synchronous observer list.
  `connect(handler)` adds a callable and returns it. `disconnect(handler)`
  removes every connection of that callable and returns whether there were any.
  `emit(*args)` calls the handlers in the order they were connected.

- **`dogewallet.rpcobjects`**: JSON-RPC 2.0 message objects.
  - `JsonRpcRequest`, `JsonRpcResponse` and `JsonRpcNotification` each add the
    `"jsonrpc": "2.0"` tag and can check themselves with `is_valid()`.
  - `to_bytes()` serialises an object as compact JSON with sorted keys.
  - `is_valid_request`, `is_valid_response` and `is_valid_notification`
    check plain dictionaries.
  - `create_json_rpc_object(value)` decides which of the three types a decoded
    value is. If it is none of them, it raises `JsonRpcObjectError`, which
    carries a `JsonRpcErrorCode`.

- **`dogewallet.rpcclient`**: `Client` posts requests to a wallet daemon with
  `httpx`.
  - `send_request(method, params, handler)` sends the request, passes the
    matching `JsonRpcResponse` to `handler` before it returns, and returns the
    request id.
  - Failures raise `RpcNetworkError`, `RpcParseError` or
    `UnknownResponseIdError`.
  - `endpoint_to_url("host:port")` builds the daemon's `http://host:port/json_rpc`
    URL. `Client.set_endpoint` uses it.

- **`dogewallet.addressbook`**: `AddressBook` is an ordered list of
  `AddressItem(label, address)` entries.
  - With a path, it is saved as JSON after every change. With `None`, it is
    kept in memory only.
  - It supports `len()`, indexing and iteration.
  - `find_by_label`, `find_by_address` and `find` return an index or `None`.
  - `add`, `edit` and `remove` change the entries. `add` raises
    `AddressBookError` when the label or the address is already in the book.

- **`dogewallet.addressbookmodel`**: table views of an address book.
  - `AddressBookModel` exposes rows by `Column` and `Role` and follows changes
    to the book through its signals.
  - `SortedAddressBookModel` orders the rows by label, ignoring case.

- **`dogewallet.stratum`**: `StratumClient` speaks the Stratum protocol to a
  mining pool: login, job notifications and share submission.
  - A `JobSlot` holds the current `Job` and its nonce counter.
  - Helpers: `parse_target`, `encode_nonce` and `difficulty_for_target`.

- **`dogewallet.worker`**: `Worker` runs hashing rounds over the current job,
  on a background thread or one at a time with `mining_round()`. It signals
  each share whose hash is below the job target.

- **`dogewallet.miner`**: `Miner` combines one `StratumClient` with a set of
  workers.
  - `start(core_count)` and `stop()` run and halt the miner.
  - Hash rates are read with `update_hash_rate()` and found shares are
    submitted with `process_shares()`.
  - `set_alternate_account(login, probability)` spends a percentage of the
    work on a second account on the same pool.
  - `MinerState` describes the miner as stopped, running or in error.

## Install

```
pip install dogewallet
```

For the test suite:

```
pip install "dogewallet[test]"
pytest
```

## Example

```python
from dogewallet.rpcobjects import JsonRpcRequest, create_json_rpc_object
from dogewallet.addressbook import AddressBook

request = JsonRpcRequest()
request.id = "1"
request.method = "get_status"
request.set_params({})
print(request.to_bytes())

reply = create_json_rpc_object({"jsonrpc": "2.0", "id": "1", "result": {"height": 10}})
print(reply.result_as_dict())

book = AddressBook("address_book.json")
book.add("friend", "example-address")
print(book.find_by_label("friend"), book[0])
```

## What it does not do

- **No hash algorithm.** `Worker` and `Miner` take a `hash_function` that you
  supply, which must return at least 32 bytes.
- **No network transport for Stratum.** You supply an object with `connect`,
  `write`, `disconnect` and `abort`. You report its events back through
  `StratumClient.connected`, `feed` and `socket_error`.
- **No event loop or timers.** The owner of the objects calls
  `response_timed_out`, `reconnect_due`, `update_hash_rate` and
  `process_shares` at the right times.
- **No pool list.** The package does not store a list of pools, choose
  between pools, or fail over from one pool to another.
- **No user interface and no command-line program.**