import pytest

from cacheprobe.datacls.diagnostics import Severity
from cacheprobe.options.option_set import OptionSet
from cacheprobe.options.override import OverrideEngine


@pytest.fixture
def options():
    opts = OptionSet()
    opts.assign("ENVBUILDER_CACHE_REPO", "reg/cache")
    opts.assign("ENVBUILDER_GIT_URL", "git@x/y")
    opts.assign("ENVBUILDER_REMOTE_REPO_BUILD_MODE", True)
    return opts


class TestOverrideEngine:
    """Tests for applying extra_env overrides."""

    def test_immutable_override_warns_once_and_is_ignored(self, options):
        diags = OverrideEngine(options, set()).apply({"ENVBUILDER_CACHE_REPO": "x"})
        assert diags.warnings_count == 1
        assert diags.errors_count == 0
        assert diags.warnings[0].summary == "Cannot override required option"
        assert diags.warnings[0].key == "ENVBUILDER_CACHE_REPO"
        assert options.cache_repo == "reg/cache"

    def test_provider_option_override_warns_and_applies(self, options):
        options.assign("ENVBUILDER_VERBOSE", True)
        diags = OverrideEngine(options, {"ENVBUILDER_VERBOSE"}).apply({"ENVBUILDER_VERBOSE": "false"})
        assert diags.warnings_count == 1
        assert diags.warnings[0].summary == "Overriding provider option"
        assert options.verbose is False

    def test_unset_option_override_is_silent(self, options):
        diags = OverrideEngine(options, set()).apply({"ENVBUILDER_DOCKERFILE_PATH": "Dockerfile"})
        assert len(diags) == 0
        assert options.dockerfile_path == "Dockerfile"

    def test_unknown_keys_are_passed_through(self, options):
        overrides = {"FOO": "bar", "ENVBUILDER_SOMETHING": "x", "ENVBUILDER_VERBOSE": "true"}
        engine = OverrideEngine(options, set())
        diags = engine.apply(overrides)
        assert len(diags) == 0
        assert engine.passthrough(overrides) == {"FOO": "bar", "ENVBUILDER_SOMETHING": "x"}

    def test_legacy_options_are_applied_and_passed_through(self, options):
        overrides = {"CODER_AGENT_SUBSYSTEM": "envbuilder", "FOO": "bar"}
        engine = OverrideEngine(options, set())
        engine.apply(overrides)
        assert options.coder_agent_subsystem == ["envbuilder"]
        assert engine.passthrough(overrides) == overrides

    def test_list_override_replaces_value(self, options):
        options.assign("ENVBUILDER_IGNORE_PATHS", ["ignore", "paths"])
        OverrideEngine(options, set()).apply({"ENVBUILDER_IGNORE_PATHS": "a,b"})
        assert options.ignore_paths == ["a", "b"]

    def test_failed_list_override_keeps_previous_value(self, options):
        options.assign("ENVBUILDER_IGNORE_PATHS", ["keep"])
        diags = OverrideEngine(options, set()).apply({"ENVBUILDER_IGNORE_PATHS": '"a"b'})
        assert diags.errors_count == 1
        assert options.ignore_paths == ["keep"]

    def test_parse_errors_do_not_stop_processing(self, options):
        diags = OverrideEngine(options, set()).apply({
            "ENVBUILDER_CACHE_TTL_DAYS": "not a number",
            "ENVBUILDER_DOCKERFILE_PATH": "Dockerfile",
            "ENVBUILDER_VERBOSE": "not a bool",
        })
        assert diags.errors_count == 2
        assert all(d.severity is Severity.ERROR for d in diags)
        assert options.dockerfile_path == "Dockerfile"
        assert options.cache_ttl_days == 0
        assert options.verbose is False

    def test_diagnostics_follow_key_order(self, options):
        diags = OverrideEngine(options, set()).apply({
            "ENVBUILDER_VERBOSE": "nope",
            "ENVBUILDER_CACHE_TTL_DAYS": "nope",
        })
        assert [d.key for d in diags] == ["ENVBUILDER_CACHE_TTL_DAYS", "ENVBUILDER_VERBOSE"]

    def test_applying_twice_equals_applying_once(self, options):
        overrides = {
            "ENVBUILDER_IGNORE_PATHS": "a,b",
            "ENVBUILDER_GIT_CLONE_DEPTH": "3",
            "ENVBUILDER_VERBOSE": "true",
            "FOO": "bar",
        }
        once = options.copy()
        OverrideEngine(once, set()).apply(overrides)
        twice = options.copy()
        engine = OverrideEngine(twice, set())
        engine.apply(overrides)
        engine.apply(overrides)
        assert once == twice


class TestExclusiveOptions:
    """Tests for mutually exclusive option groups."""

    def test_both_private_keys_yield_one_error(self, options):
        diags = OverrideEngine(options, set()).apply({
            "ENVBUILDER_GIT_SSH_PRIVATE_KEY_PATH": "/tmp/id_rsa",
            "ENVBUILDER_GIT_SSH_PRIVATE_KEY_BASE64": "a2V5",
        })
        assert diags.errors_count == 1
        assert diags.errors[0].summary == "Cannot set more than one option of an exclusive group"

    @pytest.mark.parametrize("key", [
        "ENVBUILDER_GIT_SSH_PRIVATE_KEY_PATH",
        "ENVBUILDER_GIT_SSH_PRIVATE_KEY_BASE64",
    ])
    def test_one_private_key_is_fine(self, options, key):
        diags = OverrideEngine(options, set()).apply({key: "value"})
        assert len(diags) == 0

    def test_check_runs_without_overrides(self, options):
        options.assign("ENVBUILDER_GIT_SSH_PRIVATE_KEY_PATH", "/tmp/id_rsa")
        options.assign("ENVBUILDER_GIT_SSH_PRIVATE_KEY_BASE64", "a2V5")
        diags = OverrideEngine(options, set()).apply({})
        assert diags.errors_count == 1
