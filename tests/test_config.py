import os
import tempfile

from classifieds.config import Config


def test_project_config_loads():
    cfg = Config.from_yaml("config/config.yaml")
    assert cfg.app.currency == "Rs."
    assert cfg.placement.featured_slots == 2
    assert cfg.placement.tie_break == "most_recent"
    assert cfg.promotions.pricing["urgent"].days == 5
    assert cfg.finance.term_years == 5


def test_missing_sections_fall_back_to_defaults():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "config.yaml")
        with open(path, "w", encoding="utf-8") as f:
            f.write("promotions:\n  pricing:\n    featured: { price: 5000, days: 14 }\n")
        cfg = Config.from_yaml(path)

    assert cfg.promotions.pricing["featured"].price == 5000
    assert cfg.promotions.pricing["featured"].days == 14
    assert cfg.promotions.pricing["boost"].price == 800
    assert cfg.placement.enforce_expiry is True
    assert cfg.rotation.boosted_limit == 10


def test_empty_file():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "config.yaml")
        open(path, "w").close()
        assert Config.from_yaml(path) == Config()
