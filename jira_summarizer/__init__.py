"""
jira_summarizer package

- Re-exports the public API from jira_summarizer.core.
- Provides a package-level main() suitable for console_scripts entrypoints.
"""

from .core import (  # noqa: F401
    COLS,
    DEFAULT_DOMAIN,
    EPIC_LINK,
    NO_EPIC,
    Config,
    Priority,
    Status,
    __version__,
    group_records,
    read_config,
    read_records,
    render_record,
    render_report,
    short_description,
    sort_group,
)


def main() -> None:
    """Package entrypoint. Delegates to core.main()."""
    from .core import main as _main
    _main()
