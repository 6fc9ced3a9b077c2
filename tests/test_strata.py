import pytest

from strata_flow.errors import ConfigurationError, InvalidInput
from strata_flow.strata import (
    DEFAULT_SCHEME,
    CategoricalDimension,
    StrataScheme,
    ThresholdDimension,
    build_strata_scheme,
    derive_key,
)


@pytest.mark.parametrize(
    "age, band",
    [(0, "<55"), (54, "<55"), (55, "≥55"), (90, "≥55")],
)
def test_age_band_boundaries(age, band):
    assert derive_key("Male", age) == ("Male", band)


def test_negative_age_is_rejected():
    with pytest.raises(InvalidInput):
        derive_key("Female", -1)


def test_non_integer_age_is_rejected():
    with pytest.raises(InvalidInput):
        derive_key("Female", 54.5)


def test_unknown_gender_is_rejected():
    with pytest.raises(InvalidInput):
        derive_key("Other", 40)


def test_default_scheme_has_four_strata():
    keys = DEFAULT_SCHEME.keys()
    assert len(keys) == 4
    assert ("Female", "≥55") in keys
    assert ("Male", "<55") in keys


def test_labels_use_slash_rendering():
    key = ("Female", "≥55")
    assert DEFAULT_SCHEME.label(key) == "Female / ≥55"
    assert DEFAULT_SCHEME.parse_label("Female / ≥55") == key
    assert DEFAULT_SCHEME.parse_label("Female/≥55") == key


def test_parse_unknown_label():
    with pytest.raises(InvalidInput):
        DEFAULT_SCHEME.parse_label("Male / 30s")


def test_additional_dimensions_extend_key_space():
    scheme = StrataScheme(
        dimensions=(
            CategoricalDimension("gender", ("Male", "Female")),
            ThresholdDimension("age", (40, 65)),
            CategoricalDimension("site", ("north", "south")),
        )
    )
    assert len(scheme.keys()) == 12
    assert scheme.derive(gender="Male", age=40, site="south") == ("Male", "40-64", "south")
    assert scheme.derive(gender="Male", age=39, site="south") == ("Male", "<40", "south")
    assert scheme.derive(gender="Female", age=65, site="north") == ("Female", "≥65", "north")


def test_missing_attribute_is_rejected():
    with pytest.raises(InvalidInput):
        DEFAULT_SCHEME.derive(gender="Male")


def test_build_scheme_from_config():
    assert build_strata_scheme(None) is DEFAULT_SCHEME
    scheme = build_strata_scheme(
        [{"name": "gender", "levels": ["Male", "Female"]}, {"name": "age", "cutpoints": [55]}]
    )
    assert scheme.keys() == DEFAULT_SCHEME.keys()


def test_build_scheme_rejects_incomplete_dimension():
    with pytest.raises(ConfigurationError):
        build_strata_scheme([{"name": "site"}])


def test_cutpoints_must_increase():
    with pytest.raises(ConfigurationError):
        ThresholdDimension("age", (65, 40))


def test_build_scheme_rejects_other_age_cutpoints():
    with pytest.raises(ConfigurationError, match="age"):
        build_strata_scheme(
            [{"name": "gender", "levels": ["Male", "Female"]}, {"name": "age", "cutpoints": [60]}]
        )


def test_build_scheme_allows_cutpoints_on_other_dimensions():
    scheme = build_strata_scheme(
        [
            {"name": "gender", "levels": ["Male", "Female"]},
            {"name": "age", "cutpoints": [55]},
            {"name": "bmi", "cutpoints": [30]},
        ]
    )
    assert scheme.derive(gender="Female", age=56, bmi=31) == ("Female", "≥55", "≥30")


def test_dimension_lookup_by_name():
    assert DEFAULT_SCHEME.dimension("age").name == "age"
    with pytest.raises(ConfigurationError):
        DEFAULT_SCHEME.dimension("site")
