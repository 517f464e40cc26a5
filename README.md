# pylon

Building blocks for a daemon that turns webhooks and schedules into jobs run
by coding agents. The package holds four modules:

- `pylon.store` — `Job` records and `Store`, which keeps jobs in memory and
  mirrors them to a SQLite file. `job_ids_from_db` reads every job ID from a
  database file opened read-only.
- `pylon.multistore` — `MultiStore`, which routes jobs to one `Store` per
  pylon and searches all of them on reads.
- `pylon.limits` — `AgentLimiter`, a cap on concurrently running agents, and
  `verify_signature`, an HMAC-SHA256 check of webhook bodies.
- `pylon.events` — `HookLog`, which keeps the most recent tool-use events
  reported by each job, together with `format_tool_event`,
  `extract_session_id`, `extract_result_text` and `append_event_to_log`.

It has no dependencies beyond the standard library.

## Storing jobs

```python
from pylon.store import Job, Store

with Store("jobs.db") as store:
    store.put(Job(id="job-1", pylon_name="sentry-triage", status="running"))
    store.set_completed("job-1", b'{"result": "done"}')
    print(store.get("job-1").status)          # completed
```

The in-memory cache is authoritative: `get`, `get_by_topic`, `list` and
`list_by_pylon` read from it, and failed database writes are ignored.
`recent_jobs(pylon_name, limit)` queries the database instead, newest first;
an empty pylon name means every pylon.

After a restart, `recover_from_db()` reloads every job whose status is not
`completed`, `failed`, `timeout` or `dismissed`; jobs that were `running`
come back as `active`. It returns the number of jobs loaded.

`save_payload_sample(pylon_name, body)` keeps the latest non-empty webhook
body per pylon, and `load_payload_sample(pylon_name)` returns it as JSON text
(or `""`).

## One store per pylon

```python
from pylon.multistore import MultiStore
from pylon.store import Job, Store

stores = {"pylon-a": Store("a.db"), "pylon-b": Store("b.db")}
jobs = MultiStore(stores)
jobs.put(Job(id="job-1", pylon_name="pylon-a"))
jobs.update_status("job-1", "running")
print(len(jobs.list()))                       # 1
```

Jobs for a pylon with no store are indexed but not kept.

## Limiting concurrent agents

```python
from pylon.limits import AgentLimiter

limiter = AgentLimiter(2)                     # 0 or less means unlimited
if limiter.acquire():
    try:
        ...
    finally:
        limiter.release()
print(limiter.active())
```

## Webhook signatures

```python
from pylon.limits import verify_signature

ok = verify_signature("secret", "X-Hub-Signature-256", headers, raw_body)
```

With an empty header name every request passes. Otherwise the named header
(matched case-insensitively) must hold the hex HMAC-SHA256 of the body. The
secret may name environment variables (`$NAME` or `${NAME}`), which are
expanded before the HMAC is computed.

## Tool events

```python
from pylon.events import HookLog, extract_result_text

hooks = HookLog()                             # keeps the newest 8 per job
hooks.record("job-1", "Bash", '{"command": "go test ./..."}')
hooks.record("job-1", "Edit", {"file_path": "/workspace/main.go"})
print(hooks.events("job-1"))
# ['$ go test ./...', 'Editing /workspace/main.go']

extract_result_text(b'{"result": "all good"}')  # 'all good'
```

`format_tool_event` recognises Bash, Edit, MultiEdit, Write, Read, Glob and
Grep (case-insensitively); other tools are described by their name. Bash
commands longer than 200 characters are cut and marked with `...`.
`extract_result_text` falls back to the raw output cut to 4000 characters.
`append_event_to_log(log_path, job_id, message)` appends a line to an
existing log file and returns `False` if the file cannot be opened; it never
creates the file.

## What this package does not do

It does not run an HTTP server, a cron scheduler or a chat integration, does
not start or supervise agent containers, and does not create, clone or clean
up job workspaces. It provides no command-line program. These pieces supply
the storage, limits, signature checks and event bookkeeping that such a
daemon would use.