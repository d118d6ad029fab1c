from app.core.constants import L2_VENDOR_ID, RNC_VENDOR_ID, TARRANCE_CLIENT_ID
from app.pipeline.strategy import StageStrategy

ALWAYS = [
    "format_phone_numbers",
    "classify_source",
    "scrub_dnc",
    "convert_age_code",
    "fix_age_sentinel",
    "age_from_birth_year",
    "populate_age_range",
    "pad_columns",
]


def _names(client_id=None, vendor_id=None):
    return [s.name for s in StageStrategy().resolve(client_id=client_id, vendor_id=vendor_id)]


def test_default_plan_runs_the_common_stages_in_order():
    assert _names() == ALWAYS


def test_tarrance_plan_routes_phones_before_classification():
    names = _names(client_id=TARRANCE_CLIENT_ID)
    assert names[:3] == ["format_phone_numbers", "route_tarrance_phones", "pad_tarrance_region"]
    assert names[3:] == ALWAYS[1:]


def test_rnc_plan_adds_party_and_vote_frequency():
    names = _names(vendor_id=RNC_VENDOR_ID)
    assert "derive_party" in names
    assert "voter_frequency" in names
    assert "format_rdate" not in names
    assert names.index("derive_party") < names.index("classify_source")


def test_l2_plan_formats_registration_dates():
    names = _names(vendor_id=L2_VENDOR_ID)
    assert "format_rdate" in names
    assert "derive_party" not in names


def test_critical_stages():
    steps = StageStrategy().resolve(client_id=None, vendor_id=None)
    critical = [s.name for s in steps if s.critical]
    assert critical == ["format_phone_numbers", "classify_source", "scrub_dnc"]


def test_every_resolve_returns_fresh_instances():
    strategy = StageStrategy()
    first = strategy.resolve(client_id=None, vendor_id=None)
    second = strategy.resolve(client_id=None, vendor_id=None)
    assert all(a is not b for a, b in zip(first, second))
