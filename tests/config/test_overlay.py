import pytest

from ocne.config.models import ClusterConfig
from ocne.config.overlay import ConfigOverlay


def test_overrides_shadow_base_without_touching_it():
    cc = ClusterConfig(name="demo", worker_nodes=3)
    view = ConfigOverlay(cc, name="ephemeral", worker_nodes=0)

    assert (view.name, view.worker_nodes, view.registry) == ("ephemeral", 0, cc.registry)
    assert (cc.name, cc.worker_nodes) == ("demo", 3)


def test_overlay_is_read_only():
    view = ConfigOverlay(ClusterConfig())
    with pytest.raises(AttributeError):
        view.name = "x"


def test_with_overrides_layers_more():
    view = ConfigOverlay(ClusterConfig(), name="a").with_overrides(quiet=True)

    assert view.overrides == {"name": "a", "quiet": True}
    assert view.quiet is True
