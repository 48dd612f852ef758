"""
Tests for the file location validator.

Tests cover:
- Single-path classification against the default policy
- Full-tree and staged scan modes
- Custom policies
"""

import pytest


@pytest.fixture
def validator(tmp_path):
    from gatekeeper.config import LocationConfig
    from gatekeeper.locations import LocationPolicy, LocationValidator

    return LocationValidator(LocationPolicy(LocationConfig()), root=tmp_path)


class TestClassify:
    """Classification of individual paths."""

    def test_session_notes_has_one_violation_with_suggestion(self, validator):
        """SESSION-NOTES.md in root is a forbidden-pattern violation."""
        from gatekeeper.locations import ViolationKind

        violation = validator.classify("SESSION-NOTES.md")
        assert violation is not None
        assert violation.rule_kind == ViolationKind.FORBIDDEN_PATTERN
        assert violation.suggested_path == "docs/phases/phase-X.Y/SESSION-NOTES.md"
        assert violation.reason == "Session/temporary file in root"

    def test_readme_is_allowed(self, validator):
        """README.md never produces a violation."""
        assert validator.classify("README.md") is None

    def test_draft_uses_draft_mapping(self, validator):
        """DRAFT-plan.md is relocated by the DRAFT pattern."""
        violation = validator.classify("DRAFT-plan.md")
        assert violation.suggested_path == "docs/phases/phase-X.Y/DRAFT-plan.md"

    def test_forbidden_match_is_case_insensitive(self, validator):
        """Lowercase session notes are caught too."""
        violation = validator.classify("session-log.md")
        assert violation is not None
        assert violation.suggested_path.endswith("/session-log.md")

    def test_temp_file_relocates_to_docs(self, validator):
        """Scratch files map to docs/."""
        violation = validator.classify("scratch.tmp")
        assert violation.suggested_path == "docs/scratch.tmp"

    def test_unknown_root_file_has_no_suggestion(self, validator):
        """A file neither allowed nor forbidden is not in the allow-list."""
        from gatekeeper.locations import ViolationKind

        violation = validator.classify("notes.txt")
        assert violation.rule_kind == ViolationKind.NOT_IN_ALLOWLIST
        assert violation.suggested_path is None

    def test_unexpected_directory(self, validator):
        """Root directories outside the allow-list are violations."""
        from gatekeeper.locations import ViolationKind

        violation = validator.classify("scratchpad", is_dir=True)
        assert violation.rule_kind == ViolationKind.UNEXPECTED_DIRECTORY
        assert violation.suggested_path is None

    def test_allowed_directory(self, validator):
        assert validator.classify("docs", is_dir=True) is None

    def test_dotfiles_are_allowed(self, validator):
        """Hidden files and directories are tooling, not artifacts."""
        assert validator.classify(".editorconfig") is None
        assert validator.classify(".vscode", is_dir=True) is None

    def test_nested_paths_are_not_checked(self, validator):
        """Placement rules only apply to the root."""
        assert validator.classify("docs/phases/phase-1.1/SESSION-NOTES.md") is None

    def test_describe_includes_suggestion(self, validator):
        violation = validator.classify("WIP.md")
        assert violation.describe() == (
            "WIP.md: Session/temporary file in root -> docs/phases/phase-X.Y/WIP.md"
        )


class TestScanTree:
    """Full working tree scan."""

    def test_clean_root(self, repo):
        from gatekeeper.config import LocationConfig
        from gatekeeper.locations import LocationPolicy, LocationValidator

        validator = LocationValidator(LocationPolicy(LocationConfig()), root=repo)
        assert validator.scan_tree() == []

    def test_draft_plan_in_root(self, repo):
        """Root containing DRAFT-plan.md yields exactly one violation."""
        from gatekeeper.config import LocationConfig
        from gatekeeper.locations import LocationPolicy, LocationValidator

        (repo / "DRAFT-plan.md").write_text("draft")
        validator = LocationValidator(LocationPolicy(LocationConfig()), root=repo)

        violations = validator.scan_tree()
        assert len(violations) == 1
        assert violations[0].file == "DRAFT-plan.md"
        assert violations[0].suggested_path == "docs/phases/phase-X.Y/DRAFT-plan.md"

    def test_violations_are_ordered_by_name(self, repo):
        from gatekeeper.config import LocationConfig
        from gatekeeper.locations import LocationPolicy, LocationValidator

        (repo / "WIP.md").write_text("x")
        (repo / "SESSION.md").write_text("x")
        (repo / "misc").mkdir()
        validator = LocationValidator(LocationPolicy(LocationConfig()), root=repo)

        assert [v.file for v in validator.scan_tree()] == ["SESSION.md", "WIP.md", "misc"]

    def test_unreadable_root_raises(self, tmp_path):
        """A missing root is a repository access error."""
        from gatekeeper.config import LocationConfig
        from gatekeeper.errors import RepositoryAccessError
        from gatekeeper.locations import LocationPolicy, LocationValidator

        validator = LocationValidator(LocationPolicy(LocationConfig()), root=tmp_path / "missing")
        with pytest.raises(RepositoryAccessError):
            validator.scan_tree()


class TestScanStaged:
    """Staged-only scan."""

    def test_only_root_level_staged_files_checked(self, tmp_path, make_vcs):
        from gatekeeper.config import LocationConfig
        from gatekeeper.locations import LocationPolicy, LocationValidator

        vcs = make_vcs(staged=["PROGRESS.md", "docs/NOTES.md", "src/app.py", "README.md"])
        validator = LocationValidator(LocationPolicy(LocationConfig()), root=tmp_path, vcs=vcs)

        violations = validator.scan(staged=True)
        assert [v.file for v in violations] == ["PROGRESS.md"]

    def test_git_failure_yields_no_violations(self, tmp_path, make_vcs):
        """Outside a git repository there is nothing staged."""
        from gatekeeper.config import LocationConfig
        from gatekeeper.locations import LocationPolicy, LocationValidator

        validator = LocationValidator(
            LocationPolicy(LocationConfig()), root=tmp_path, vcs=make_vcs(fail=True)
        )
        assert validator.scan_staged() == []

    def test_no_vcs_yields_no_violations(self, tmp_path):
        from gatekeeper.config import LocationConfig
        from gatekeeper.locations import LocationPolicy, LocationValidator

        validator = LocationValidator(LocationPolicy(LocationConfig()), root=tmp_path)
        assert validator.scan_staged() == []


class TestCustomPolicy:
    """Policies loaded from configuration."""

    def test_custom_pattern_and_relocation(self, tmp_path):
        from gatekeeper.config import ForbiddenPattern, LocationConfig
        from gatekeeper.locations import LocationPolicy, LocationValidator

        config = LocationConfig(
            allowed_root_files=["README.md"],
            allowed_root_dirs=["docs"],
            forbidden_patterns=[ForbiddenPattern(r"^scratch", "docs/scratch/")],
        )
        validator = LocationValidator(LocationPolicy(config), root=tmp_path)

        assert validator.classify("Scratch-ideas.txt").suggested_path == "docs/scratch/Scratch-ideas.txt"
        assert validator.classify("LICENSE").suggested_path is None
