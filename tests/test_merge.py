"""
Test suite for the merge orchestrator.

    §1  Scenarios (keyed update, direct assign, unmatched, syntax error, type mismatch)
    §2  Properties (idempotence, isolation, all-or-nothing)
    §3  Options (duplicate policy, require_match, environment)
    §4  Documents and results
    §5  Independent concurrent merges
"""

import sys
import os
import logging
import pytest
from concurrent.futures import ThreadPoolExecutor

# Add parent to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from treemerge.merge import merge, MergeResult
from treemerge.options import DuplicatePolicy, MergeOptions
from treemerge.selector import parse_selector
from treemerge.tree import Document, TMap
from treemerge.formats import from_python, to_python
from treemerge.errors import (
    SelectorSyntaxError, MergeInstructionError, TypeMismatchError,
    MissingSourceError, DuplicateTargetError, NoMatchError,
)


BASE_A = {
    "environment": {
        "preview": [
            {"name": "url", "value": "preview.com"},
            {"name": "allowedIps", "value": []},
        ],
    },
}

INPUT_A = {"Ips": ["12.12.12.10", "12.12.12.13"]}

SELECTOR_A = "environment.preview.[].(name=allowedIps on value from Ips)"


# ═══════════════════════════════════════════════════════════════════
#  §1  SCENARIOS
# ═══════════════════════════════════════════════════════════════════

class TestScenarios:

    def test_keyed_update(self):
        """Scenario A: update the allowedIps entry, leave url alone."""
        result = merge(from_python(BASE_A), from_python(INPUT_A), SELECTOR_A)
        preview = to_python(result.root)["environment"]["preview"]
        assert preview[1] == {"name": "allowedIps", "value": ["12.12.12.10", "12.12.12.13"]}
        assert preview[0] == {"name": "url", "value": "preview.com"}
        assert result.report.applied == 1
        assert result.report.unmatched_count == 0

    def test_keyed_update_across_group(self):
        base = from_python({
            "environment": {
                "preview": [{"name": "allowedIps", "value": []}],
                "prod": [{"name": "allowedIps", "value": ["0.0.0.0"]}],
            },
        })
        result = merge(base, from_python(INPUT_A),
                       "environment.(preview|prod).[].(name=allowedIps on value from Ips)")
        env = to_python(result.root)["environment"]
        assert env["preview"][0]["value"] == INPUT_A["Ips"]
        assert env["prod"][0]["value"] == INPUT_A["Ips"]
        assert result.report.applied == 2

    def test_group_with_absent_alternative(self):
        result = merge(from_python(BASE_A), from_python(INPUT_A),
                       "environment.(preview|prod).[].(name=allowedIps on value from Ips)")
        assert result.report.locations == 1
        assert result.report.applied == 1
        assert "prod" not in to_python(result.root)["environment"]

    def test_direct_assign(self):
        """Scenario B: api_config.keys takes the input's api_keys."""
        result = merge(from_python({"api_config": {"keys": []}}),
                       from_python({"api_keys": ["abc", "def"]}),
                       "api_config.(keys from api_keys)")
        assert to_python(result.root)["api_config"]["keys"] == ["abc", "def"]

    def test_unmatched_target(self):
        """Scenario C: missing target is reported, merge completes, base unchanged."""
        base = from_python(BASE_A)
        result = merge(base, from_python(INPUT_A),
                       "environment.preview.[].(name=nonexistent on value from Ips)")
        assert result.report.unmatched_count == 1
        assert result.report.applied == 0
        assert not result.report.changed
        assert to_python(result.root) == BASE_A

    def test_syntax_error(self):
        """Scenario D: empty segment aborts before resolution."""
        base = from_python(BASE_A)
        with pytest.raises(SelectorSyntaxError) as info:
            merge(base, from_python(INPUT_A), "environment..preview")
        assert info.value.position == 12
        assert to_python(base) == BASE_A

    def test_type_mismatch(self):
        """Scenario E: keyed update on a scalar aborts, base unmodified."""
        base = from_python({"environment": {"preview": "preview.com"}})
        with pytest.raises(TypeMismatchError) as info:
            merge(base, from_python(INPUT_A),
                  "environment.preview.(name=allowedIps on value from Ips)")
        assert info.value.actual == "scalar"
        assert to_python(base) == {"environment": {"preview": "preview.com"}}


# ═══════════════════════════════════════════════════════════════════
#  §2  PROPERTIES
# ═══════════════════════════════════════════════════════════════════

class TestProperties:

    @pytest.mark.parametrize("base,source,selector", [
        (BASE_A, INPUT_A, SELECTOR_A),
        ({"api_config": {"keys": []}}, {"api_keys": ["abc"]}, "api_config.(keys from api_keys)"),
        ({"env": {"a": {}, "b": {}}}, {"x": {"y": 1}}, "env.[].(cfg, copy from x)"),
    ])
    def test_idempotence(self, base, source, selector):
        once = merge(from_python(base), from_python(source), selector).root
        twice_tree = from_python(base)
        merge(twice_tree, from_python(source), selector)
        merge(twice_tree, from_python(source), selector)
        assert twice_tree == once

    def test_input_is_never_mutated(self):
        source = from_python(INPUT_A)
        before = source.clone()
        result = merge(from_python(BASE_A), source, SELECTOR_A)
        assert source == before

        # Changing the merged value must not reach back into the input
        written = result.root.entries["environment"].entries["preview"].items[1].entries["value"]
        written.items.clear()
        assert source == before

    def test_partial_shape_violation_writes_nothing(self):
        """One bad location aborts the whole merge before any write."""
        base = from_python({
            "environment": {
                "preview": [{"name": "allowedIps", "value": []}],
                "prod": "not a list",
            },
        })
        before = base.clone()
        with pytest.raises(TypeMismatchError):
            merge(base, from_python(INPUT_A),
                  "environment.(preview|prod).(name=allowedIps on value from Ips)")
        assert base == before

    def test_missing_source_writes_nothing(self):
        base = from_python(BASE_A)
        with pytest.raises(MissingSourceError):
            merge(base, from_python({"Other": 1}), SELECTOR_A)
        assert to_python(base) == BASE_A

    def test_zero_matches_is_not_an_error(self):
        result = merge(from_python(BASE_A), from_python(INPUT_A),
                       "nowhere.[].(name=allowedIps on value from Ips)")
        assert result.report.locations == 0
        assert result.report.applied == 0
        assert to_python(result.root) == BASE_A


# ═══════════════════════════════════════════════════════════════════
#  §3  OPTIONS
# ═══════════════════════════════════════════════════════════════════

DUPLICATES = {"l": [{"k": "a", "v": 0}, {"k": "a", "v": 0}]}


class TestOptions:

    def test_default_policy_is_first(self):
        assert MergeOptions().duplicate_policy is DuplicatePolicy.FIRST
        assert MergeOptions().require_match is False

    def test_first_policy_logs_ambiguity(self, caplog):
        with caplog.at_level(logging.WARNING, logger="treemerge"):
            result = merge(from_python(DUPLICATES), from_python({"s": 1}), "l.(k=a on v from s)")
        assert result.report.ambiguous == 1
        assert "updating the first" in caplog.text

    def test_all_policy(self):
        opts = MergeOptions(duplicate_policy=DuplicatePolicy.ALL)
        result = merge(from_python(DUPLICATES), from_python({"s": 1}), "l.(k=a on v from s)", opts)
        assert [e["v"] for e in to_python(result.root)["l"]] == [1, 1]

    def test_error_policy(self):
        opts = MergeOptions(duplicate_policy=DuplicatePolicy.ERROR)
        base = from_python(DUPLICATES)
        with pytest.raises(DuplicateTargetError):
            merge(base, from_python({"s": 1}), "l.(k=a on v from s)", opts)
        assert to_python(base) == DUPLICATES

    def test_require_match_raises_on_nothing_applied(self):
        opts = MergeOptions(require_match=True)
        with pytest.raises(NoMatchError):
            merge(from_python(BASE_A), from_python(INPUT_A),
                  "environment.preview.[].(name=nonexistent on value from Ips)", opts)

    def test_require_match_passes_when_applied(self):
        opts = MergeOptions(require_match=True)
        result = merge(from_python(BASE_A), from_python(INPUT_A), SELECTOR_A, opts)
        assert result.report.applied == 1

    def test_from_env(self):
        opts = MergeOptions.from_env({
            "TREEMERGE_DUPLICATE_POLICY": "ALL",
            "TREEMERGE_REQUIRE_MATCH": "yes",
        })
        assert opts.duplicate_policy is DuplicatePolicy.ALL
        assert opts.require_match is True

    def test_from_env_defaults(self):
        assert MergeOptions.from_env({}) == MergeOptions()

    def test_from_env_unknown_policy_falls_back(self, caplog):
        with caplog.at_level(logging.WARNING, logger="treemerge"):
            opts = MergeOptions.from_env({"TREEMERGE_DUPLICATE_POLICY": "sometimes"})
        assert opts.duplicate_policy is DuplicatePolicy.FIRST
        assert "sometimes" in caplog.text


# ═══════════════════════════════════════════════════════════════════
#  §4  DOCUMENTS AND RESULTS
# ═══════════════════════════════════════════════════════════════════

class TestDocuments:

    def test_document_keeps_format_tag(self):
        base = Document(from_python(BASE_A), "yaml")
        result = merge(base, Document(from_python(INPUT_A), "json"), SELECTOR_A)
        assert isinstance(result, MergeResult)
        assert result.document is base
        assert result.document.format == "yaml"

    def test_bare_tree_gets_untagged_document(self):
        result = merge(from_python(BASE_A), from_python(INPUT_A), SELECTOR_A)
        assert result.document.format is None

    def test_base_is_updated_in_place(self):
        base = from_python(BASE_A)
        result = merge(base, from_python(INPUT_A), SELECTOR_A)
        assert result.root is base

    def test_parsed_selector_accepted(self):
        result = merge(from_python(BASE_A), from_python(INPUT_A), parse_selector(SELECTOR_A))
        assert result.report.applied == 1

    def test_selector_without_instruction(self):
        with pytest.raises(MergeInstructionError):
            merge(from_python(BASE_A), from_python(INPUT_A), "environment.preview")

    def test_dotted_source(self):
        result = merge(from_python({"cfg": {}}),
                       from_python({"secrets": {"api_keys": ["k"]}}),
                       "cfg.(keys from secrets.api_keys)")
        assert to_python(result.root) == {"cfg": {"keys": ["k"]}}

    def test_merge_into_empty_map(self):
        result = merge(TMap(), from_python({"a": 1}), "(a from a)")
        assert to_python(result.root) == {"a": 1}

    def test_summary_is_logged(self, caplog):
        with caplog.at_level(logging.INFO, logger="treemerge"):
            merge(from_python(BASE_A), from_python(INPUT_A), SELECTOR_A)
        assert "1 applied" in caplog.text


# ═══════════════════════════════════════════════════════════════════
#  §5  INDEPENDENT CONCURRENT MERGES
# ═══════════════════════════════════════════════════════════════════

class TestConcurrency:

    def test_parallel_merges_on_separate_trees(self):
        def work(i):
            result = merge(from_python(BASE_A), from_python({"Ips": [f"10.0.0.{i}"]}), SELECTOR_A)
            return to_python(result.root)["environment"]["preview"][1]["value"]

        with ThreadPoolExecutor(max_workers=8) as pool:
            values = list(pool.map(work, range(32)))
        assert values == [[f"10.0.0.{i}"] for i in range(32)]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
