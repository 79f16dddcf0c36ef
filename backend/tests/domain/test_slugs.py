import pytest

from app.domain.slugs import is_uuid, slugify

pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    "value,expected",
    [
        ("Contact Us", "contact-us"),
        ("  Hello__World  ", "hello-world"),
        ("a -- b", "a-b"),
        ("Café & Bar!", "caf-bar"),
        ("-edge-", "edge"),
        ("日本語", ""),
        (None, ""),
    ],
)
def test_slugify(value, expected):
    assert slugify(value) == expected


def test_is_uuid():
    assert is_uuid("3f1c2a4e-8d9b-4c1a-9e2f-1a2b3c4d5e6f")
    assert not is_uuid("not-a-uuid")
    assert not is_uuid("")
