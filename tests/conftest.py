import json
import logging

import pytest


@pytest.fixture
def events(caplog):
    """Structured log records emitted so far, decoded from their JSON payload."""

    caplog.set_level(logging.DEBUG, logger="adscraper")

    def collect(name=None):
        out = []
        for record in caplog.records:
            if record.name != "adscraper":
                continue
            try:
                payload = json.loads(record.getMessage())
            except ValueError:
                continue
            if name is None or payload.get("event") == name:
                out.append(payload)
        return out

    return collect
