"""Skips, sub-benchmarks and suite triggers."""

import shutil
import sqlite3
import tempfile
from pathlib import Path

from benchloop import after_all, before_all


@before_all
def open_database(root):
    root.tmpdir = Path(tempfile.mkdtemp(prefix="benchloop-"))
    root.db = sqlite3.connect(root.tmpdir / "bench.db", check_same_thread=False)
    root.db.execute("CREATE TABLE IF NOT EXISTS kv (k INTEGER PRIMARY KEY, v BLOB)")


@after_all
def close_database(root):
    root.db.close()
    shutil.rmtree(root.tmpdir)


def bench_sum(b):
    b.skip("no summing for today")
    total = 0
    for i in range(b.N):
        total += i


def bench_insert(b):
    table = {}

    def local_dict(sb):
        sb.skip("no local-dict")
        for i in range(sb.N):
            table[i] = True
        table.clear()

    def rewrite_1000(sb):
        for i in range(sb.N):
            table[i % 1000] = True
        table.clear()

    def sqlite_replace(sb):
        db = b.parent.db
        row = [0, b"x" * 16]
        sb.set_bytes(len(row[1]))
        for i in range(sb.N):
            row[0] = i % 1000
            db.execute("REPLACE INTO kv (k, v) VALUES (?, ?)", row)

    b.run("local-dict", local_dict)
    b.run("rewrite-1000", rewrite_1000)
    b.run("sqlite-replace", sqlite_replace)
