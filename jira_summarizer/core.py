"""
jira_summarizer core
- Reads a Jira CSV export from stdin and prints a Markdown summary grouped by epic.
- Rows are ordered by priority, then status, then summary inside each epic.
- Status is shown as a shields.io badge (or an emoji icon with --icons).

Example:
    jira-summarizer -c config.ini < export.csv > SUMMARY.md
"""

import argparse
import configparser
import csv
import io
import json
import re
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, TextIO, Tuple
from urllib.parse import quote

import pandas as pd
from tqdm import tqdm

__version__ = "1.0.0"

DEFAULT_TZ = timezone.utc
DEFAULT_DOMAIN = "example.atlassian.net"
NO_EPIC = "No epic"
BADGE_BASE_URL = "https://img.shields.io/badge"

ISSUE_KEY = "Issue key"
SUMMARY = "Summary"
DESCRIPTION = "Description"
LABELS = "Labels"
EPIC_LINK = "Custom field\t(Epic Link)"
PRIORITY = "Priority"
STATUS = "Status"

COLS = [
    ISSUE_KEY,
    SUMMARY,
    DESCRIPTION,
    LABELS,
    EPIC_LINK,
    PRIORITY,
    STATUS,
]

_EPIC_LINK_RE = re.compile(r"^Custom field\s+\(Epic Link\)$")
_SUMMARY_PREFIX_RE = re.compile(r"^Summary: ", re.IGNORECASE | re.ASCII)
_OWNER_SUMMARY_PREFIX_RE = re.compile(r"^[A-Za-z]+'s summary: ", re.IGNORECASE | re.ASCII)


class Priority(Enum):
    """Jira priorities; the value is the rank used for ordering and emphasis."""
    HIGHEST = 2
    HIGH = 1
    MEDIUM = 0
    LOW = -1
    LOWEST = -2

    @property
    def rank(self) -> int:
        return self.value

    @classmethod
    def parse(cls, name: str) -> "Priority":
        """Map a priority name to a member; unknown names count as MEDIUM."""
        for member in cls:
            if member.name.title() == name:
                return member
        return cls.MEDIUM


class Status(Enum):
    """Jira statuses as (name, tier, icon). OTHER covers any unknown status."""
    STAGING_READY = ("Staging Ready", 2, ":+1:")
    CLOSED = ("Closed", 2, ":star:")
    CODE_REVIEW = ("Code Review", 1, ":+1:")
    IN_PROGRESS = ("In Progress", 1, ":hourglass:")
    REJECTED = ("Rejected", 1, ":warning:")
    OPEN = ("Open", 0, ":black_square_button:")
    OTHER = ("", 0, ":grey_question:")

    def __init__(self, label: str, tier: int, icon: str):
        self.label = label
        self.tier = tier
        self.icon = icon

    @classmethod
    def parse(cls, name: str) -> "Status":
        for member in cls:
            if member is not cls.OTHER and member.label == name:
                return member
        return cls.OTHER


BADGE_COLORS = {
    2: "brightgreen",
    1: "yellow",
    0: "lightgrey",
}


@dataclass(frozen=True)
class Config:
    """Settings read once at startup and passed explicitly to the renderers."""
    domain: str = DEFAULT_DOMAIN
    epics: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "epics", MappingProxyType(dict(self.epics)))


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments for the summarizer.

    Args:
        argv: Argument list; defaults to sys.argv[1:].

    Returns:
        argparse.Namespace: Parsed command-line options.
    """
    p = argparse.ArgumentParser(
        prog="jira-summarizer",
        description="Summarize a Jira CSV export (read from stdin) as Markdown grouped by epic.",
    )
    p.add_argument("-v", "--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument("-c", "--config", default=None, help="Path to a config file (.ini or .json); optional")
    p.add_argument("--out", default="", help="Output Markdown file; stdout when empty")
    p.add_argument("--icons", action="store_true", help="Use emoji icons instead of status badges")
    p.add_argument("--verbose", action="store_true", help="Print diagnostics to stderr")
    return p.parse_args(argv)


def vprint(verbose: bool, *args, **kwargs):
    """Print arguments to stderr only when verbose is True."""
    if verbose:
        kwargs.setdefault("file", sys.stderr)
        print(*args, **kwargs)


def _config_error(path: str, reason: str):
    print(f"ERROR: cannot load config file '{path}': {reason}", file=sys.stderr)
    sys.exit(2)


def _read_json_config(path: str) -> Dict[str, Any]:
    with open(path, encoding="utf-8") as fh:
        data = json.load(fh)
    if not isinstance(data, dict):
        raise ValueError("top-level value must be an object")
    return data


def _read_ini_config(path: str) -> Dict[str, Any]:
    cp = configparser.ConfigParser(interpolation=None)
    cp.optionxform = str  # epic keys are case-sensitive
    with open(path, encoding="utf-8") as fh:
        cp.read_file(fh)
    data: Dict[str, Any] = {}
    if cp.has_section("summarizer"):
        data["domain"] = cp["summarizer"].get("domain", "")
    if cp.has_section("epics"):
        defaults = cp.defaults()
        data["epics"] = {k: v for k, v in cp["epics"].items() if k not in defaults}
    return data


def read_config(path: Optional[str]) -> Config:
    """Read the optional configuration file and merge it over the defaults.

    JSON files (``.json``) hold an object with ``domain`` and ``epics``; any
    other file is read as INI with a ``[summarizer]`` section (``domain``) and
    an ``[epics]`` section mapping epic keys to display names.

    Args:
        path: Path to the config file, or None for the built-in defaults.

    Returns:
        Config: The effective configuration.
    """
    if not path:
        return Config()
    try:
        if path.lower().endswith(".json"):
            data = _read_json_config(path)
        else:
            data = _read_ini_config(path)
    except OSError as e:
        _config_error(path, e.strerror or str(e))
    except (json.JSONDecodeError, configparser.Error, UnicodeDecodeError, ValueError) as e:
        _config_error(path, str(e))

    domain = data.get("domain") or DEFAULT_DOMAIN
    epics = data.get("epics") or {}
    if not isinstance(domain, str):
        _config_error(path, "'domain' must be a string")
    if not isinstance(epics, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in epics.items()
    ):
        _config_error(path, "'epics' must map strings to strings")
    return Config(domain=domain.strip() or DEFAULT_DOMAIN, epics=epics)


def _ingestion_error(reason: str):
    print(f"ERROR: cannot read CSV input: {reason}", file=sys.stderr)
    sys.exit(3)


def check_field_counts(text: str) -> None:
    """Exit with code 3 when a data row has a different field count than the header."""
    # no cap on cell size; 2**31 - 1 is the largest limit every platform accepts
    csv.field_size_limit(min(sys.maxsize, 2**31 - 1))
    expected: Optional[int] = None
    reader = csv.reader(io.StringIO(text, newline=""))
    try:
        for row in reader:
            if not row:
                continue
            if expected is None:
                expected = len(row)
            elif len(row) != expected:
                _ingestion_error(
                    f"expected {expected} fields in line {reader.line_num}, saw {len(row)}"
                )
    except csv.Error as e:
        _ingestion_error(f"line {reader.line_num}: {e}")


def _canonical_column(name: str) -> str:
    if _EPIC_LINK_RE.match(name):
        return EPIC_LINK
    return name


def read_records(stream: TextIO) -> pd.DataFrame:
    """Read the whole CSV export into a DataFrame of strings.

    Every cell is kept as a string and empty cells stay "". Columns listed in
    COLS that are absent from the header are added empty.

    Args:
        stream: Text stream positioned at the header row.

    Returns:
        pd.DataFrame: One row per issue, in input order.
    """
    try:
        text = stream.read()
    except UnicodeDecodeError as e:
        _ingestion_error(str(e))
    if text.startswith("\ufeff"):
        text = text[1:]

    if not text.strip():
        return pd.DataFrame(columns=COLS, dtype=str)

    check_field_counts(text)
    try:
        df = pd.read_csv(io.StringIO(text), sep=",", dtype=str, keep_default_na=False)
    except pd.errors.ParserError as e:
        _ingestion_error(str(e))

    df = df.rename(columns=_canonical_column)
    for col in COLS:
        if col not in df.columns:
            df[col] = ""
    return df


def group_records(df: pd.DataFrame) -> Dict[str, pd.DataFrame]:
    """Partition records by epic link.

    Returns:
        Dict[str, pd.DataFrame]: Epic key -> records, keys in ascending order,
        input order preserved inside each group. "" holds issues without epic.
    """
    groups: Dict[str, pd.DataFrame] = {}
    for key, part in df.groupby(EPIC_LINK, sort=True):
        groups[key] = part
    return groups


def sort_key(record: Mapping[str, Any]) -> Tuple[int, int, str, str]:
    """Sort key for one record: priority desc, status tier desc, status asc, summary asc."""
    status = str(record.get(STATUS, ""))
    return (
        -Priority.parse(str(record.get(PRIORITY, ""))).rank,
        -Status.parse(status).tier,
        status,
        str(record.get(SUMMARY, "")),
    )


def sort_group(df: pd.DataFrame) -> pd.DataFrame:
    """Order the records of one epic; complete ties keep their input order."""
    ranked = df.assign(
        _priority=df[PRIORITY].map(lambda p: Priority.parse(p).rank),
        _tier=df[STATUS].map(lambda s: Status.parse(s).tier),
    )
    ranked = ranked.sort_values(
        ["_priority", "_tier", STATUS, SUMMARY],
        ascending=[False, False, True, True],
        kind="mergesort",
    )
    return ranked.drop(columns=["_priority", "_tier"])


def short_description(desc: str) -> str:
    """Extract the short description out of a long description.

    Keeps the first line only, then drops one wrapping underscore on each
    side, a "Summary: " prefix and a "<Name>'s summary: " prefix, in that
    order.
    """
    text = re.sub(r"\r\n?", "\n", desc or "").split("\n")[0]
    if text.startswith("_"):
        text = text[1:]
    if text.endswith("_"):
        text = text[:-1]
    text = _SUMMARY_PREFIX_RE.sub("", text, count=1)
    text = _OWNER_SUMMARY_PREFIX_RE.sub("", text, count=1)
    return text


def issue_url(key: str, domain: str) -> str:
    return f"https://{domain}/browse/{key}"


def badge_label(status: str) -> str:
    if not status:
        return "unknown"
    return status.lower().replace(" ", "_")


def badge_url(status: str) -> str:
    """Build a shields.io static badge URL for a status."""
    label = badge_label(status)
    color = BADGE_COLORS[Status.parse(status).tier]
    # shields.io reads a single dash as separator
    escaped = quote(label.replace("-", "--"), safe="")
    return f"{BADGE_BASE_URL}/{escaped}-{color}.svg"


def emphasize(title: str, priority: str) -> str:
    rank = Priority.parse(priority).rank
    if rank > 0:
        return f"**{title}**"
    if rank < 0:
        return f"*{title}*"
    return title


def render_record(record: Mapping[str, Any], cfg: Config, icons: bool = False) -> str:
    """Render one issue as a Markdown list item.

    Args:
        record: Row mapping keyed by the COLS names.
        cfg: Effective configuration (for the issue domain).
        icons: Use the emoji icon instead of the badge image.

    Returns:
        str: The list item, title line then the quoted short description.
    """
    status = record.get(STATUS, "")
    url = issue_url(record.get(ISSUE_KEY, ""), cfg.domain)
    if icons:
        marker = Status.parse(status).icon
    else:
        marker = f"![{badge_label(status)}]({badge_url(status)})"
    title = emphasize(record.get(SUMMARY, ""), record.get(PRIORITY, ""))
    shortdesc = short_description(record.get(DESCRIPTION, ""))
    return "\n".join([
        f"- [{marker}]({url}) {title}",
        f"  > {shortdesc}",
    ])


def epic_name(key: str, cfg: Config) -> str:
    """Display name of an epic: configured name, else the key, else NO_EPIC."""
    return cfg.epics.get(key) or key or NO_EPIC


def render_group(key: str, df: pd.DataFrame, cfg: Config, icons: bool = False) -> str:
    """Render one epic: heading, then its records in sorted order."""
    records = sort_group(df).to_dict("records")
    items = [render_record(r, cfg, icons=icons) for r in records]
    return "\n\n".join([f"## {epic_name(key, cfg)}"] + items)


def get_timestamp(now: Optional[datetime] = None) -> str:
    """Return the UTC date like '2018-09-02'."""
    now = now or datetime.now(tz=DEFAULT_TZ)
    return now.astimezone(DEFAULT_TZ).date().isoformat()


def render_report(df: pd.DataFrame, cfg: Config, today: Optional[str] = None,
                  icons: bool = False, progress: bool = False) -> str:
    """Render the complete Markdown document.

    Args:
        df: All records from read_records.
        cfg: Effective configuration.
        today: Banner date (YYYY-MM-DD); defaults to the current UTC date.
        icons: Use emoji icons instead of badges.
        progress: Show a tqdm progress bar on stderr while rendering.

    Returns:
        str: The document, banner first, ending with a newline.
    """
    groups = group_records(df)
    blocks = [f"*Last updated on {today or get_timestamp()}*"]
    with tqdm(total=len(groups), desc="Rendering epics", unit="epic",
              file=sys.stderr, disable=not progress) as pbar:
        for key, part in groups.items():
            blocks.append(render_group(key, part, cfg, icons=icons))
            pbar.update(1)
    return "\n\n".join(blocks) + "\n"


def write_output(text: str, out_path: str = "") -> None:
    """Write the document to out_path, or stdout when out_path is empty."""
    if not out_path:
        sys.stdout.write(text)
        sys.stdout.flush()
        return
    try:
        with open(out_path, "w", encoding="utf-8") as fh:
            fh.write(text)
    except OSError as e:
        print(f"ERROR: failed to write '{out_path}': {e}", file=sys.stderr)
        sys.exit(4)


def main(argv: Optional[List[str]] = None):
    """Program entry point: config, read stdin, render, write."""
    args = parse_args(argv)
    verbose = args.verbose

    cfg = read_config(args.config)
    vprint(verbose, f"Config: {args.config or 'built-in defaults'} (domain={cfg.domain}, epics={len(cfg.epics)})")

    df = read_records(sys.stdin)
    vprint(verbose, f"Rows read: {len(df)}")

    report = render_report(df, cfg, icons=args.icons, progress=verbose)
    write_output(report, args.out.strip())
    if args.out.strip():
        vprint(verbose, f"Report written: {args.out.strip()}")


if __name__ == "__main__":
    main()
