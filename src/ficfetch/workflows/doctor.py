"""Environment diagnostics for ``ficfetch doctor``."""

from __future__ import annotations

import importlib.util
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .fetcher_config import MIN_REQUEST_INTERVAL
from .fetcher_utils import collect_environment_warnings
from .web_fetch import FetchConfig

# (import name, distribution name, what it is used for)
_DEPENDENCIES = (
    ("aiohttp", "aiohttp", "HTTP client"),
    ("bs4", "beautifulsoup4", "HTML parsing"),
    ("lxml", "lxml", "parser backend"),
    ("ftfy", "ftfy", "text repair"),
    ("charset_normalizer", "charset-normalizer", "byte decoding"),
    ("dateutil", "python-dateutil", "generic date fallback"),
)


@dataclass
class DoctorCheck:
    section: str
    name: str
    passed: bool
    detail: str
    remedy: Optional[str] = None

    @property
    def status(self) -> str:
        return "ok" if self.passed else "fail"


def _module_available(name: str) -> bool:
    try:
        return importlib.util.find_spec(name) is not None
    except (ImportError, ValueError):
        return False


def _dependency_checks() -> List[DoctorCheck]:
    return [
        DoctorCheck("dependencies", module, _module_available(module), purpose, f"pip install {dist}")
        for module, dist, purpose in _DEPENDENCIES
    ]


def _politeness_checks(config: FetchConfig) -> List[DoctorCheck]:
    return [
        DoctorCheck(
            "politeness",
            "min_interval",
            config.min_interval >= MIN_REQUEST_INTERVAL,
            f"{config.min_interval:g}s between requests",
            f"Keep at least {MIN_REQUEST_INTERVAL:g}s between requests to respect the archive's terms.",
        ),
        DoctorCheck(
            "politeness",
            "timeout",
            config.timeout > 0,
            f"{config.timeout:g}s per request",
            "Set FICFETCH_TIMEOUT to a positive number of seconds.",
        ),
        DoctorCheck(
            "politeness",
            "bypass_delay",
            0 <= config.bypass_delay < config.min_interval or config.min_interval <= 0,
            f"{config.bypass_delay:g}s between content-warning retries",
            "FICFETCH_BYPASS_DELAY should be shorter than the request interval.",
        ),
    ]


def build_doctor_report(*, config: Optional[FetchConfig] = None) -> Dict[str, Any]:
    config = config or FetchConfig.from_env()
    checks = _dependency_checks() + _politeness_checks(config)
    return {
        "generated_at": datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z"),
        "ok": all(check.passed for check in checks),
        "config": {
            "base_url": config.base_url,
            "min_interval": config.min_interval,
            "timeout": config.timeout,
            "bypass_delay": config.bypass_delay,
            "page_delay": config.page_delay,
            "page_size": config.page_size,
        },
        "checks": [dict(asdict(check), status=check.status) for check in checks],
        "environment_warnings": collect_environment_warnings(),
    }


def format_doctor_report(report: Dict[str, Any]) -> str:
    lines = ["ficfetch doctor", f"Generated: {report.get('generated_at')}", ""]
    lines.append("Configuration:")
    lines.extend(f"  {key}: {value}" for key, value in (report.get("config") or {}).items())

    section = None
    for check in report.get("checks", []):
        if check["section"] != section:
            section = check["section"]
            lines.extend(["", f"{section.capitalize()}:"])
        lines.append(f"  [{check['status']}] {check['name']} ({check['detail']})")
        if not check["passed"] and check.get("remedy"):
            lines.append(f"    remedy: {check['remedy']}")

    env_warnings = report.get("environment_warnings") or []
    if env_warnings:
        lines.extend(["", "Environment warnings:"])
        for item in env_warnings:
            lines.append(f"  {item['code']}: {item['message']}")
            lines.append(f"    remedy: {item['remedy']}")

    lines.extend(["", "Overall: " + ("ok" if report.get("ok") else "attention needed")])
    return "\n".join(lines) + "\n"


__all__ = ["DoctorCheck", "build_doctor_report", "format_doctor_report"]
