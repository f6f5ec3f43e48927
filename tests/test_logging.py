import json
import logging

from storefront.core.logging import REDACTED, ConsoleFormatter, JsonFormatter
from storefront.sandbox.__main__ import seeded_store


def _record(**extra) -> logging.LogRecord:
    record = logging.makeLogRecord({"name": "storefront.test", "levelname": "INFO", "msg": "hola %s", "args": ("mundo",)})
    record.__dict__.update(extra)
    return record


def test_json_formatter_nests_context_and_redacts_secrets():
    line = JsonFormatter().format(_record(user_id="u1", token="tok-secret"))
    entry = json.loads(line)
    assert entry["msg"] == "hola mundo"
    assert entry["logger"] == "storefront.test"
    assert entry["context"] == {"user_id": "u1", "token": REDACTED}
    assert "tok-secret" not in line


def test_console_formatter_appends_context():
    line = ConsoleFormatter().format(_record(operation="add_item", Authorization="Bearer x"))
    assert "hola mundo" in line
    assert "operation=add_item" in line
    assert f"Authorization={REDACTED}" in line


def test_sandbox_seed_catalog():
    store = seeded_store()
    assert store.stock_for("cap-red") == 0
    assert not store.variants["mug-legacy"].active
