import csv
import io
import os
import sys
# Ensure project root is importable for tests, regardless of runner CWD
ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

from typing import Dict, List, Optional

import pytest

HEADER = [
    "Issue key",
    "Summary",
    "Description",
    "Labels",
    "Custom field\t(Epic Link)",
    "Priority",
    "Status",
]


def make_row(key: str, summary: str = "S", description: str = "", labels: str = "",
             epic: str = "", priority: str = "Medium", status: str = "Open") -> Dict[str, str]:
    return {
        "Issue key": key,
        "Summary": summary,
        "Description": description,
        "Labels": labels,
        "Custom field\t(Epic Link)": epic,
        "Priority": priority,
        "Status": status,
    }


def make_csv(rows: List[Dict[str, str]], header: Optional[List[str]] = None) -> str:
    """Build CSV text like a Jira export (CRLF line endings)."""
    header = header or HEADER
    buf = io.StringIO()
    w = csv.writer(buf)
    w.writerow(header)
    for r in rows:
        w.writerow([r.get(h, "") for h in header])
    return buf.getvalue()


@pytest.fixture
def tmp_config_file(tmp_path):
    """Create an INI config with a domain and two epic names and return its path."""
    p = tmp_path / "config.ini"
    p.write_text(
        "[summarizer]\n"
        "domain = x.atlassian.net\n"
        "\n"
        "[epics]\n"
        "PR-100 = Checkout Flow\n"
        "PR-200 = Onboarding\n",
        encoding="utf-8",
    )
    return p


@pytest.fixture
def tmp_json_config_file(tmp_path):
    """Same settings as tmp_config_file, in the JSON format."""
    p = tmp_path / "config.json"
    p.write_text(
        '{"domain": "x.atlassian.net", "epics": {"PR-100": "Checkout Flow", "PR-200": "Onboarding"}}',
        encoding="utf-8",
    )
    return p


# Expose utilities for tests
__all__ = ["HEADER", "make_row", "make_csv"]
