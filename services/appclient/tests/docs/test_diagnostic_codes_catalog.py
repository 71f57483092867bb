from pathlib import Path
import re

import generate_diagnostic_codes

REPO_ROOT = Path(__file__).resolve().parents[4]
SRC_ROOT = REPO_ROOT / "services" / "appclient" / "src" / "appclient"


def _catalog_codes() -> set[str]:
    codes = generate_diagnostic_codes.load_codes(REPO_ROOT / generate_diagnostic_codes.CODES_RELPATH)
    return {c["code"] for c in codes}


def test_every_emitted_code_is_catalogued():
    emitted: set[str] = set()
    for path in SRC_ROOT.rglob("*.py"):
        emitted.update(re.findall(r'code="([A-Z_]+)"', path.read_text(encoding="utf-8")))
    assert emitted
    assert emitted <= _catalog_codes()


def test_reference_page_is_up_to_date():
    codes = generate_diagnostic_codes.load_codes(REPO_ROOT / generate_diagnostic_codes.CODES_RELPATH)
    page = REPO_ROOT / generate_diagnostic_codes.OUT_RELPATH
    assert page.read_text(encoding="utf-8") == generate_diagnostic_codes.render(codes)
