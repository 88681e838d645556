import pytest

from ocne.utils.naming import increment_count


@pytest.mark.parametrize(
    "name, expected",
    [
        ("foo", "foo-1"),
        ("foo-1", "foo-2"),
        ("foo-9", "foo-10"),
        ("foo-03", "foo-04"),
        ("foo-09", "foo-10"),
        ("foo-99", "foo-100"),
        ("foo-bar", "foo-bar-1"),
        ("ocne-control-plane-2", "ocne-control-plane-3"),
    ],
)
def test_increment_count(name, expected):
    assert increment_count(name, "-") == expected


def test_increment_count_other_separator():
    assert increment_count("template.4", ".") == "template.5"
    assert increment_count("template", ".") == "template.1"


def test_increment_is_strictly_new():
    name = "md-0"
    seen = {name}
    for _ in range(20):
        name = increment_count(name, "-")
        assert name not in seen
        seen.add(name)
