from ficfetch.workflows import fetcher_utils
from ficfetch.workflows.doctor import build_doctor_report, format_doctor_report
from ficfetch.workflows.web_fetch import FetchConfig


def _clear(monkeypatch):
    for name in ("FICFETCH_MIN_INTERVAL", "FICFETCH_TIMEOUT", "FICFETCH_BASE_URL"):
        monkeypatch.delenv(name, raising=False)


def test_defaults_produce_no_warnings(monkeypatch):
    _clear(monkeypatch)
    assert fetcher_utils.collect_environment_warnings() == []


def test_collect_environment_warnings_flags_impolite_interval(monkeypatch):
    _clear(monkeypatch)
    monkeypatch.setenv("FICFETCH_MIN_INTERVAL", "1")
    codes = {item.get("code") for item in fetcher_utils.collect_environment_warnings()}
    assert "min_interval_below_floor" in codes


def test_collect_environment_warnings_flags_timeout_and_insecure_base(monkeypatch):
    _clear(monkeypatch)
    monkeypatch.setenv("FICFETCH_TIMEOUT", "0")
    monkeypatch.setenv("FICFETCH_BASE_URL", "http://localhost:8000")
    codes = {item.get("code") for item in fetcher_utils.collect_environment_warnings()}
    assert {"timeout_invalid", "base_url_insecure"} <= codes


def test_doctor_report_checks_interval(monkeypatch):
    _clear(monkeypatch)
    report = build_doctor_report(config=FetchConfig(min_interval=2.0))
    checks = {check["name"]: check for check in report["checks"]}
    assert checks["min_interval"]["status"] == "fail"
    assert checks["aiohttp"]["status"] == "ok"
    assert report["ok"] is False
    text = format_doctor_report(report)
    assert "ficfetch doctor" in text
    assert "[fail] min_interval" in text
    assert "remedy: Keep at least 5s" in text


def test_build_work_url_and_href_helpers():
    assert fetcher_utils.build_work_url("9", query="view_adult=true") == (
        "https://archiveofourown.org/works/9?view_adult=true"
    )
    assert fetcher_utils.work_id_from_href("https://archiveofourown.org/works/31/chapters/2") == "31"
    assert fetcher_utils.work_id_from_href(None) is None
