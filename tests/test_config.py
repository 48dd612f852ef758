"""
Tests for configuration loading and validation.
"""

import pytest
import yaml


class TestDefaults:
    """Default configuration values."""

    def test_defaults_are_valid(self):
        """Built-in defaults pass validation."""
        from gatekeeper.config import GatekeeperConfig, validate_config

        is_valid, errors = validate_config(GatekeeperConfig())
        assert is_valid, errors

    def test_default_policy_maps_session_files_to_phase_dir(self):
        """SESSION and DRAFT patterns relocate to the phase placeholder directory."""
        from gatekeeper.config import LocationConfig, PHASE_PLACEHOLDER_DIR

        config = LocationConfig()
        relocations = {p.pattern: p.relocation for p in config.forbidden_patterns}
        assert relocations[r"SESSION.*\.md$"] == PHASE_PLACEHOLDER_DIR
        assert relocations[r"DRAFT.*\.md$"] == PHASE_PLACEHOLDER_DIR
        assert relocations[r"\.tmp$"] == "docs/"

    def test_default_freshness_window(self):
        """Evidence is fresh for 10 minutes by default."""
        from gatekeeper.config import EvidenceConfig

        assert EvidenceConfig().max_age_minutes == 10

    def test_round_trip_through_dict(self):
        """to_dict output can be loaded back with from_dict."""
        from gatekeeper.config import GatekeeperConfig

        config = GatekeeperConfig()
        config.overlap.threshold = 0.8
        loaded = GatekeeperConfig.from_dict(config.to_dict())
        assert loaded.overlap.threshold == 0.8
        assert loaded.locations.forbidden_patterns == config.locations.forbidden_patterns


class TestConfigManager:
    """Loading configuration from files and environment."""

    def test_missing_default_file_uses_defaults(self, tmp_path):
        """No .gatekeeper.yaml means defaults."""
        from gatekeeper.config import ConfigManager

        manager = ConfigManager(base_dir=tmp_path)
        assert manager.config.evidence.max_age_minutes == 10

    def test_loads_yaml_file(self, tmp_path):
        """Values in .gatekeeper.yaml override defaults."""
        from gatekeeper.config import ConfigManager

        (tmp_path / ".gatekeeper.yaml").write_text(yaml.safe_dump({
            "evidence": {"max_age_minutes": 30},
            "locations": {
                "forbidden_patterns": [{"pattern": r"SCRATCH.*\.md$", "relocation": "docs/scratch/"}],
            },
        }))
        config = ConfigManager(base_dir=tmp_path).config
        assert config.evidence.max_age_minutes == 30
        assert config.locations.forbidden_patterns[0].pattern == r"SCRATCH.*\.md$"
        assert config.locations.forbidden_patterns[0].relocation == "docs/scratch/"

    def test_missing_explicit_file_raises(self, tmp_path):
        """An explicitly named config file must exist."""
        from gatekeeper.config import ConfigManager
        from gatekeeper.errors import ConfigurationError

        with pytest.raises(ConfigurationError, match="not found"):
            ConfigManager(config_file=tmp_path / "nope.yaml")

    def test_invalid_yaml_raises(self, tmp_path):
        """Malformed YAML is a configuration error."""
        from gatekeeper.config import ConfigManager
        from gatekeeper.errors import ConfigurationError

        (tmp_path / ".gatekeeper.yaml").write_text("evidence: [unclosed\n")
        with pytest.raises(ConfigurationError):
            ConfigManager(base_dir=tmp_path)

    def test_non_mapping_file_raises(self, tmp_path):
        """A YAML list at the top level is rejected."""
        from gatekeeper.config import ConfigManager
        from gatekeeper.errors import ConfigurationError

        (tmp_path / ".gatekeeper.yaml").write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError, match="mapping"):
            ConfigManager(base_dir=tmp_path)

    def test_unknown_keys_are_all_reported(self, tmp_path):
        """Unknown sections and keys are listed together."""
        from gatekeeper.config import ConfigManager
        from gatekeeper.errors import ConfigurationError

        (tmp_path / ".gatekeeper.yaml").write_text(yaml.safe_dump({
            "bogus": {"x": 1},
            "evidence": {"max_age": 5},
        }))
        with pytest.raises(ConfigurationError) as exc_info:
            ConfigManager(base_dir=tmp_path)
        assert len(exc_info.value.errors) == 2
        assert "bogus" in str(exc_info.value)

    def test_invalid_values_raise(self, tmp_path):
        """Out-of-range thresholds and bad regexes fail validation."""
        from gatekeeper.config import ConfigManager
        from gatekeeper.errors import ConfigurationError

        (tmp_path / ".gatekeeper.yaml").write_text(yaml.safe_dump({
            "overlap": {"threshold": 1.5},
            "locations": {"forbidden_patterns": [{"pattern": "(unclosed"}]},
        }))
        with pytest.raises(ConfigurationError) as exc_info:
            ConfigManager(base_dir=tmp_path)
        messages = "\n".join(exc_info.value.errors)
        assert "threshold" in messages
        assert "(unclosed" in messages

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        """GATEKEEPER_* variables win over the file."""
        from gatekeeper.config import ConfigManager

        (tmp_path / ".gatekeeper.yaml").write_text(yaml.safe_dump({
            "evidence": {"max_age_minutes": 30},
        }))
        monkeypatch.setenv("GATEKEEPER_EVIDENCE_MAX_AGE_MINUTES", "15")
        monkeypatch.setenv("GATEKEEPER_GATE_LOCATION_MODE", "full")
        config = ConfigManager(base_dir=tmp_path).config
        assert config.evidence.max_age_minutes == 15
        assert config.gate.location_mode == "full"

    def test_non_numeric_env_override_raises(self, tmp_path, monkeypatch):
        """A non-numeric value for a numeric setting is rejected."""
        from gatekeeper.config import ConfigManager
        from gatekeeper.errors import ConfigurationError

        monkeypatch.setenv("GATEKEEPER_OVERLAP_THRESHOLD", "high")
        with pytest.raises(ConfigurationError, match="environment"):
            ConfigManager(base_dir=tmp_path)

    def test_save_writes_loadable_file(self, tmp_path):
        """save() output loads back to the same configuration."""
        from gatekeeper.config import ConfigManager

        manager = ConfigManager(base_dir=tmp_path)
        manager.save(tmp_path / ".gatekeeper.yaml")

        reloaded = ConfigManager(base_dir=tmp_path).config
        assert reloaded.to_dict() == manager.config.to_dict()

    def test_validate_reports_edits_made_after_loading(self, tmp_path):
        from gatekeeper.config import ConfigManager

        manager = ConfigManager(base_dir=tmp_path)
        assert manager.validate() == (True, [])

        manager.config.gate.location_mode = "everything"
        ok, errors = manager.validate()
        assert not ok
        assert errors == ["Gate location_mode must be 'staged' or 'full'"]


class TestValidateConfig:
    """validate_config rules."""

    def test_weights_must_sum_to_one(self):
        from gatekeeper.config import GatekeeperConfig, validate_config

        config = GatekeeperConfig()
        config.overlap.title_weight = 0.9
        is_valid, errors = validate_config(config)
        assert not is_valid
        assert any("weights" in e for e in errors)

    def test_phase_pattern_needs_group(self):
        from gatekeeper.config import GatekeeperConfig, validate_config

        config = GatekeeperConfig()
        config.gate.phase_pattern = r"feat: phase-\d+\.\d+"
        is_valid, errors = validate_config(config)
        assert not is_valid
        assert any("group" in e for e in errors)

    def test_freshness_window_must_be_positive(self):
        from gatekeeper.config import GatekeeperConfig, validate_config

        config = GatekeeperConfig()
        config.evidence.max_age_minutes = 0
        is_valid, _ = validate_config(config)
        assert not is_valid
