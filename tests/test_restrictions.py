"""
Tests for filesystem restrictions.
"""

import pytest

from phoundation_fs.filesystem import (
    FileSystemConfig,
    NoRestrictionsError,
    OutOfBoundsException,
    Restrictions,
    RestrictionsException,
    WriteRestrictionsException,
)


class TestRestrictionsCheck:
    """Test Restrictions.check and is_restricted."""

    def test_path_inside_allowed_directory(self):
        """Test that paths below an allowed prefix pass."""
        restrictions = Restrictions("/srv/app", write=True)
        assert restrictions.check("/srv/app/data/file.txt", write=True) is restrictions
        assert restrictions.check("/srv/app", write=False) is restrictions

    def test_path_outside_allowed_directory(self):
        """Test that paths not covered by any prefix are denied."""
        restrictions = Restrictions("/srv/app", write=True)
        with pytest.raises(RestrictionsException) as exc_info:
            restrictions.check("/etc/passwd")
        assert exc_info.value.path == "/etc/passwd"

    def test_write_denied_on_readonly_prefix(self):
        """Test that write access on a read-only prefix raises a write exception."""
        restrictions = Restrictions("/srv/app", write=False)
        restrictions.check("/srv/app/file", write=False)
        with pytest.raises(WriteRestrictionsException):
            restrictions.check("/srv/app/file", write=True)

    def test_write_exception_is_restrictions_exception(self):
        """Test that write denials can be caught as RestrictionsException."""
        restrictions = Restrictions("/srv/app")
        with pytest.raises(RestrictionsException):
            restrictions.check("/srv/app/file", write=True)

    def test_prefix_respects_component_boundaries(self):
        """Test that /data does not cover /database."""
        restrictions = Restrictions("/data", write=True)
        assert restrictions.is_restricted("/database/x") == "pattern"
        assert restrictions.is_restricted("/data/x") is None

    def test_longest_prefix_wins(self):
        """Test that the most specific prefix decides write access."""
        restrictions = Restrictions({"/srv": True, "/srv/readonly": False})
        restrictions.check("/srv/other/file", write=True)
        assert restrictions.is_restricted("/srv/readonly/file", write=True) == "write"
        with pytest.raises(WriteRestrictionsException):
            restrictions.check("/srv/readonly/file", write=True)

    def test_multiple_paths_all_checked(self):
        """Test that every path of a list is checked."""
        restrictions = Restrictions("/srv/app")
        with pytest.raises(RestrictionsException):
            restrictions.check(["/srv/app/a", "/tmp/b"])

    def test_empty_restrictions(self):
        """Test that empty restrictions deny everything."""
        with pytest.raises(NoRestrictionsError):
            Restrictions().check("/srv/app")

    def test_trailing_slash_normalized(self):
        """Test that trailing slashes and dot segments are normalized."""
        restrictions = Restrictions("/srv/app/", write=True)
        assert restrictions.directories == {"/srv/app": True}
        restrictions.check("/srv/app/")
        restrictions.check("/srv/app/x/../y", write=True)

    def test_dot_dot_escape_denied(self):
        """Test that .. segments cannot escape a prefix."""
        restrictions = Restrictions("/srv/app", write=True)
        with pytest.raises(RestrictionsException):
            restrictions.check("/srv/app/../secret")

    def test_root_covers_everything(self):
        """Test that / covers all absolute paths."""
        restrictions = Restrictions("/")
        restrictions.check("/etc/passwd")

    def test_contains(self):
        """Test the in operator."""
        restrictions = Restrictions("/srv/app")
        assert "/srv/app/x" in restrictions
        assert "/srv/other" not in restrictions

    def test_label_in_message(self):
        """Test that the label shows up in error messages."""
        restrictions = Restrictions("/srv/app", label="uploads")
        with pytest.raises(RestrictionsException) as exc_info:
            restrictions.check("/etc")
        assert "uploads" in str(exc_info.value)


class TestRestrictionsDerivation:
    """Test derived Restrictions copies."""

    def test_get_parent(self):
        """Test that get_parent moves every prefix up."""
        restrictions = Restrictions("/a/b/c", write=True)
        assert restrictions.get_parent().directories == {"/a/b": True}
        assert restrictions.get_parent(2).directories == {"/a": True}

    def test_get_parent_stops_at_root(self):
        """Test that the parent of / is /."""
        assert Restrictions("/a").get_parent(5).directories == {"/": False}

    def test_get_parent_invalid_levels(self):
        """Test that levels below 1 are rejected."""
        with pytest.raises(OutOfBoundsException):
            Restrictions("/a").get_parent(0)

    def test_get_child(self):
        """Test that children are appended to every prefix."""
        restrictions = Restrictions({"/a": True, "/b": False})
        child = restrictions.get_child(["x", "y"])
        assert child.directories == {
            "/a/x": True,
            "/a/y": True,
            "/b/x": False,
            "/b/y": False,
        }

    def test_get_child_write_override(self):
        """Test that get_child can set the write flag."""
        child = Restrictions("/a", write=True).get_child("x", write=False)
        assert child.directories == {"/a/x": False}

    def test_get_child_escape(self):
        """Test that children cannot escape their prefix."""
        with pytest.raises(OutOfBoundsException):
            Restrictions("/a").get_child("../b")

    def test_get_these_writable(self):
        """Test that get_these_writable does not modify the original."""
        original = Restrictions(["/a", "/b"], write=False)
        writable = original.get_these_writable()
        assert writable.directories == {"/a": True, "/b": True}
        assert original.directories == {"/a": False, "/b": False}

    def test_derivations_never_mutate(self):
        """Test that deriving leaves the source instance unchanged."""
        original = Restrictions("/a/b", write=True, label="source")
        original.get_parent()
        original.get_child("c")
        original.with_directory("/z")
        assert original.directories == {"/a/b": True}
        assert original.label == "source"

    def test_merge(self):
        """Test merging two restriction sets."""
        merged = Restrictions("/a", label="one").merge(Restrictions("/b", write=True, label="two"))
        assert merged.directories == {"/a": False, "/b": True}
        assert merged.label == "one+two"


class TestRestrictionsConstruction:
    """Test Restrictions constructors."""

    def test_ensure_returns_instance(self):
        """Test that existing instances are returned unchanged."""
        restrictions = Restrictions("/a")
        assert Restrictions.ensure(restrictions) is restrictions

    def test_ensure_from_string_and_list(self):
        """Test that strings and lists are converted."""
        assert Restrictions.ensure("/a", write=True).directories == {"/a": True}
        assert Restrictions.ensure(["/a", "/b"]).directories == {"/a": False, "/b": False}

    def test_ensure_none(self):
        """Test that nothing specified gives None."""
        assert Restrictions.ensure(None) is None
        assert Restrictions.ensure("  ") is None

    def test_new_writable_and_readonly(self):
        """Test the named constructors."""
        assert Restrictions.new_writable("/a").directories == {"/a": True}
        assert Restrictions.new_readonly("/a").directories == {"/a": False}

    def test_get_system(self):
        """Test that system restrictions come from configuration."""
        config = FileSystemConfig(system_directories=["/srv/app"], system_writable=True)
        restrictions = Restrictions.get_system(config)
        assert restrictions.directories == {"/srv/app": True}
        assert restrictions.label == "system"

    def test_get_restrictions_or_default(self):
        """Test that the first given candidate is used."""
        first = Restrictions("/a")
        assert Restrictions.get_restrictions_or_default(None, first) is first

    def test_equality(self):
        """Test value equality."""
        assert Restrictions("/a", write=True) == Restrictions({"/a": True})
        assert Restrictions("/a") != Restrictions("/b")
