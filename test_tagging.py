"""
Tests for workflow parsing, tag derivation, reconciliation and metadata lookup.
"""

import json
import pytest

from workflow_tagger.graph_parser import ParseError, parse_graph, build_graph
from workflow_tagger.metadata_locator import locate_workflow_text, clean_workflow_text
from workflow_tagger.models import GraphEncoding, ReconcileMode, TagOrigin, TagToggles
from workflow_tagger.reconciler import CaseInsensitiveTagSet, reconcile
from workflow_tagger.tag_deriver import derive_tags, find_sampler, loader_tag, split_prompt


ARRAY_WORKFLOW = {
    "nodes": [
        {"id": 1, "class_type": "CheckpointLoaderSimple", "inputs": {"ckpt_name": "sd_xl_base_1.0.safetensors"}},
        {"id": 2, "class_type": "KSampler", "inputs": {"positive": [3, 0], "negative": [4, 0]}},
        {"id": 3, "inputs": {"text": "a cat, sitting"}},
        {"id": 4, "inputs": {"text": "blurry, watermark"}},
    ]
}

MAP_WORKFLOW = {
    "1": {"class_type": "CheckpointLoaderSimple", "inputs": {"ckpt_name": "sd_xl_base_1.0.safetensors"}},
    "2": {"class_type": "KSampler", "inputs": {"positive": ["3", 0], "negative": ["4", 0]}},
    "3": {"class_type": "CLIPTextEncode", "inputs": {"text": "a cat, sitting"}},
    "4": {"class_type": "CLIPTextEncode", "inputs": {"text": "blurry, watermark"}},
}

SCENARIO_TAGS = ["sd_xl_base_1.0", "a cat", "sitting", "neg:blurry", "neg:watermark"]

ALL_ON = TagToggles()


def values(candidates):
    return [c.value for c in candidates]


class TestGraphParser:
    def test_array_encoding(self):
        graph = parse_graph(json.dumps(ARRAY_WORKFLOW))
        assert graph.encoding is GraphEncoding.ARRAY
        assert [n.id for n in graph.nodes] == [1, 2, 3, 4]
        assert graph.get(3).input("text") == "a cat, sitting"

    def test_map_encoding_injects_ids(self):
        graph = parse_graph(json.dumps(MAP_WORKFLOW))
        assert graph.encoding is GraphEncoding.MAP
        assert [n.id for n in graph.nodes] == ["1", "2", "3", "4"]
        assert graph.get("2").kind == "KSampler"
        assert set(graph.by_id) == {"1", "2", "3", "4"}

    def test_map_encoding_skips_non_mapping_values(self):
        graph = build_graph({"1": {"class_type": "KSampler"}, "version": 0.4, "extra": None})
        assert [n.id for n in graph.nodes] == ["1"]

    def test_editor_type_field_is_the_kind(self):
        graph = build_graph({"nodes": [{"id": 7, "type": "LoraLoader", "inputs": [{"name": "model"}]}]})
        assert graph.nodes[0].kind == "LoraLoader"
        assert graph.nodes[0].inputs == {}

    def test_empty_object_yields_empty_graph(self):
        graph = parse_graph("{}")
        assert graph.is_empty
        assert len(graph) == 0

    @pytest.mark.parametrize("text", ["[]", "null", "42", '"text"', "[1, 2]"])
    def test_unrecognized_shapes_are_not_errors(self, text):
        graph = parse_graph(text)
        assert graph.is_empty
        assert graph.encoding is GraphEncoding.UNRECOGNIZED

    def test_malformed_json_raises(self):
        with pytest.raises(ParseError):
            parse_graph("{not json")

    def test_absent_lookup_is_none(self):
        graph = parse_graph(json.dumps(ARRAY_WORKFLOW))
        assert graph.get(99) is None
        assert graph.get(None) is None


class TestTagDeriver:
    def test_scenario_add_tags(self):
        graph = parse_graph(json.dumps(ARRAY_WORKFLOW))
        candidates = derive_tags(graph, ALL_ON)
        assert values(candidates) == SCENARIO_TAGS
        assert [c.origin for c in candidates] == [
            TagOrigin.LOADER,
            TagOrigin.POSITIVE_PROMPT,
            TagOrigin.POSITIVE_PROMPT,
            TagOrigin.NEGATIVE_PROMPT,
            TagOrigin.NEGATIVE_PROMPT,
        ]

    def test_both_encodings_derive_the_same_tags(self):
        array_tags = values(derive_tags(parse_graph(json.dumps(ARRAY_WORKFLOW)), ALL_ON))
        map_tags = values(derive_tags(parse_graph(json.dumps(MAP_WORKFLOW)), ALL_ON))
        assert array_tags == map_tags == SCENARIO_TAGS

    def test_checkpoints_come_before_loras_regardless_of_node_order(self):
        graph = build_graph({
            "1": {"class_type": "LoraLoader", "inputs": {"lora_name": "styles/Ink_Wash.safetensors"}},
            "2": {"class_type": "CheckpointLoader", "inputs": {"ckpt_name": "models\\DreamShaper_8.ckpt"}},
            "3": {"class_type": "LoraLoader", "inputs": {"lora_name": "detail.pt"}},
            "4": {"class_type": "CheckpointLoaderSimple", "inputs": {"ckpt_name": "base.safetensors"}},
        })
        assert values(derive_tags(graph, ALL_ON)) == ["dreamshaper_8", "base", "ink_wash", "detail"]

    def test_loader_toggles(self):
        graph = build_graph({
            "1": {"class_type": "LoraLoader", "inputs": {"lora_name": "detail.pt"}},
            "2": {"class_type": "CheckpointLoaderSimple", "inputs": {"ckpt_name": "base.safetensors"}},
        })
        assert values(derive_tags(graph, TagToggles(lora=False))) == ["base"]
        assert values(derive_tags(graph, TagToggles(checkpoint=False))) == ["detail"]

    def test_last_sampler_is_authoritative(self):
        graph = build_graph({
            "1": {"class_type": "KSampler", "inputs": {"positive": ["3", 0], "negative": ["4", 0]}},
            "2": {"class_type": "KSampler", "inputs": {"positive": ["4", 0], "negative": ["3", 0]}},
            "3": {"inputs": {"text": "first"}},
            "4": {"inputs": {"text": "second"}},
        })
        assert find_sampler(graph).id == "2"
        assert values(derive_tags(graph, ALL_ON)) == ["second", "neg:first"]

    def test_only_ksampler_and_lora_loader_kinds_match(self):
        graph = build_graph({
            "1": {"class_type": "KSampler", "inputs": {"positive": ["3", 0], "negative": ["4", 0]}},
            "2": {"class_type": "KSamplerAdvanced", "inputs": {"positive": ["4", 0], "negative": ["3", 0]}},
            "3": {"inputs": {"text": "base"}},
            "4": {"inputs": {"text": "refiner"}},
            "5": {"class_type": "LoraLoaderModelOnly", "inputs": {"lora_name": "x.safetensors"}},
        })
        assert find_sampler(graph).id == "1"
        assert values(derive_tags(graph, ALL_ON)) == ["base", "neg:refiner"]

    def test_integral_float_references_resolve(self):
        graph = build_graph({"nodes": [
            {"id": 2, "class_type": "KSampler", "inputs": {"positive": [3.0, 0], "negative": [4.5, 0]}},
            {"id": 3, "inputs": {"text": "cat"}},
            {"id": 4, "inputs": {"text": "dog"}},
        ]})
        assert graph.get(3.0) is graph.nodes[1]
        assert graph.get(4.5) is None
        assert values(derive_tags(graph, ALL_ON)) == ["cat"]

    def test_no_sampler_means_no_prompt_tags(self):
        graph = build_graph({"3": {"class_type": "CLIPTextEncode", "inputs": {"text": "cat"}}})
        assert derive_tags(graph, ALL_ON) == []

    def test_dangling_and_literal_references_contribute_nothing(self):
        graph = build_graph({
            "2": {"class_type": "KSampler", "inputs": {"positive": ["99", 0], "negative": "blurry"}},
        })
        assert derive_tags(graph, ALL_ON) == []

    def test_prompt_toggles(self):
        graph = parse_graph(json.dumps(ARRAY_WORKFLOW))
        only_negative = TagToggles(checkpoint=False, lora=False, positive_prompt=False)
        assert values(derive_tags(graph, only_negative)) == ["neg:blurry", "neg:watermark"]
        nothing = TagToggles(checkpoint=False, lora=False, positive_prompt=False, negative_prompt=False)
        assert derive_tags(graph, nothing) == []

    def test_split_prompt(self):
        assert split_prompt("Masterpiece,\nBest Quality, , 1girl\n") == ["masterpiece", "best quality", "1girl"]
        assert split_prompt(" , \n ", "neg:") == []
        assert split_prompt("Lowres", "neg:") == ["neg:lowres"]
        assert split_prompt(None) == []
        assert split_prompt(["not", "text"]) == []

    def test_loader_tag(self):
        assert loader_tag("sd_xl_base_1.0.safetensors") == "sd_xl_base_1.0"
        assert loader_tag("a/b/Model.ckpt") == "model"
        assert loader_tag("C:\\models\\Model.ckpt") == "model"
        assert loader_tag("noext") == "noext"
        assert loader_tag("") is None
        assert loader_tag(["1", 0]) is None

    def test_derivation_is_deterministic(self):
        graph = parse_graph(json.dumps(MAP_WORKFLOW))
        assert derive_tags(graph, ALL_ON) == derive_tags(graph, ALL_ON)


class TestReconciler:
    def candidates(self, workflow=ARRAY_WORKFLOW, toggles=ALL_ON):
        return derive_tags(build_graph(workflow), toggles)

    def test_add_to_empty(self):
        result = reconcile([], self.candidates(), ReconcileMode.ADD)
        assert result.result_tags == SCENARIO_TAGS
        assert result.changed == SCENARIO_TAGS

    def test_remove_after_add(self):
        added = reconcile([], self.candidates(), ReconcileMode.ADD)
        removed = reconcile(added.result_tags, self.candidates(), ReconcileMode.REMOVE)
        assert removed.result_tags == []
        assert removed.changed == SCENARIO_TAGS

    def test_add_is_idempotent(self):
        existing = ["portrait", "Favorite"]
        once = reconcile(existing, self.candidates(), ReconcileMode.ADD)
        twice = reconcile(once.result_tags, self.candidates(), ReconcileMode.ADD)
        assert twice.result_tags == once.result_tags
        assert twice.changed == []

    def test_add_then_remove_restores_original(self):
        existing = ["portrait", "Favorite", "landscape"]
        added = reconcile(existing, self.candidates(), ReconcileMode.ADD)
        removed = reconcile(added.result_tags, self.candidates(), ReconcileMode.REMOVE)
        assert removed.result_tags == existing
        assert set(CaseInsensitiveTagSet(added.changed)) == set(CaseInsensitiveTagSet(removed.changed))

    def test_no_op_add_when_tag_present(self):
        toggles = TagToggles(lora=False, positive_prompt=False, negative_prompt=False)
        existing = ["sd_xl_base_1.0"]
        result = reconcile(existing, self.candidates(toggles=toggles), ReconcileMode.ADD)
        assert result.result_tags == existing
        assert result.result_tags is not existing
        assert result.changed == []

    def test_case_insensitive_dedup(self):
        result = reconcile(["A Cat", "SD_XL_BASE_1.0"], ["a cat", "sd_xl_base_1.0"], ReconcileMode.ADD)
        assert result.changed == []
        assert result.result_tags == ["A Cat", "SD_XL_BASE_1.0"]

    def test_duplicate_candidates_added_once(self):
        result = reconcile(["x"], ["cat", "Cat", "cat"], ReconcileMode.ADD)
        assert result.result_tags == ["x", "cat"]
        assert result.changed == ["cat"]

    def test_remove_preserves_order_and_original_casing(self):
        existing = ["keep1", "A Cat", "keep2", "NEG:Blurry", "keep3"]
        result = reconcile(existing, ["a cat", "neg:blurry", "neg:blurry"], ReconcileMode.REMOVE)
        assert result.result_tags == ["keep1", "keep2", "keep3"]
        assert result.changed == ["A Cat", "NEG:Blurry"]

    def test_existing_list_is_not_mutated(self):
        existing = ["portrait"]
        reconcile(existing, ["cat"], ReconcileMode.ADD)
        reconcile(existing, ["portrait"], ReconcileMode.REMOVE)
        assert existing == ["portrait"]

    def test_case_insensitive_set(self):
        tags = CaseInsensitiveTagSet(["Cat"])
        assert "CAT" in tags
        assert not tags.add("cat")
        assert tags.add("dog")
        assert len(tags) == 2


class TestMetadataLocator:
    def test_model_field_with_prompt_marker(self):
        fields = {"Model": {"description": 'prompt:{"1": {}}'}, "Make": {"description": "workflow:{}"}}
        assert locate_workflow_text(fields) == '{"1": {}}'

    def test_falls_back_to_make_field(self):
        fields = {"Make": {"description": 'workflow:{"nodes": []}'}}
        assert locate_workflow_text(fields) == '{"nodes": []}'

    def test_text_chunks_after_exif_fields(self):
        fields = {"workflow": {"description": '{"nodes": []}'}, "prompt": {"description": '{"3": {}}'}}
        assert locate_workflow_text(fields) == '{"3": {}}'
        fields["Make"] = {"description": "workflow:{}"}
        assert locate_workflow_text(fields) == "{}"

    def test_marker_is_optional(self):
        assert locate_workflow_text({"Model": {"description": '  {"1": {}}  '}}) == '{"1": {}}'

    def test_legacy_unicode_artifact_is_stripped(self):
        fields = {"Model": {"description": 'prompt:UNICODE\x00\x00 {"1": {}}\n'}}
        assert locate_workflow_text(fields) == '{"1": {}}'
        assert clean_workflow_text("UNICODE{}") == "UNICODE{}"

    def test_empty_values_are_skipped(self):
        fields = {"Model": {"description": "prompt:"}, "Make": {"description": "workflow: {}"}}
        assert locate_workflow_text(fields) == "{}"

    def test_nothing_found(self):
        assert locate_workflow_text({}) is None
        assert locate_workflow_text(None) is None
        assert locate_workflow_text({"Model": {"description": ""}, "Artist": {"description": "me"}}) is None
