"""Tests for compiling a Blueprint into a graph."""

from __future__ import annotations

import pytest

from deployplan.compiler import (
    ExecuteAnnotation,
    GroupAnnotation,
    PipelineGraph,
    PrepareAnnotation,
    PublishAssetsAnnotation,
    SelfUpdateAnnotation,
    StackGroupAnnotation,
    StepAnnotation,
    describe_annotation,
)
from deployplan.dsl import blueprint, docker_asset, file_asset, sh, source, stack, stage, synth, wave
from deployplan.errors import GraphInvariantError, MissingOutputError, StepCycleError
from deployplan.graph import Graph
from deployplan.model import Blueprint
from deployplan.ui.console import Console, set_console


def _child(graph, *path):
    node = graph
    for name in path:
        node = node.try_get_child(name)
        assert node is not None, f"missing {name}"
    return node


def _step_nodes(plan, step):
    return [
        n for n in plan.graph.descendants()
        if isinstance(n.data, StepAnnotation) and n.data.step is step
    ]


class TestTopLevel:
    def test_synth_goes_to_build_and_is_marked(self, synth_step) -> None:
        plan = PipelineGraph(blueprint(synth_step))
        node = _child(plan.graph, "Build", "Synth")
        assert plan.is_synth_node(node)
        assert node.data.is_build_step
        assert plan.cloud_assembly_file_set is synth_step.primary_output
        assert plan.last_preparation_node is node

    def test_missing_output_is_fatal(self) -> None:
        with pytest.raises(MissingOutputError) as exc:
            PipelineGraph(blueprint(sh("Synth", "make")))
        assert exc.value.node == "ShellStep(Synth)"
        assert "must produce the cloud assembly" in str(exc.value)

    def test_build_step_flag_is_set_once(self, synth_step) -> None:
        plan = PipelineGraph(blueprint(synth_step))
        node = _child(plan.graph, "Build", "Synth")
        with pytest.raises(GraphInvariantError):
            node.data.mark_build_step()

    def test_self_mutation(self, synth_step) -> None:
        plan = PipelineGraph(
            blueprint(synth_step, wave("W", stage("S", stack("App", file_asset("a"))))),
            self_mutation=True,
        )
        synth_node = _child(plan.graph, "Build", "Synth")
        mutate = _child(plan.graph, "UpdatePipeline", "SelfMutate")
        assert isinstance(mutate.data, SelfUpdateAnnotation)
        assert mutate.dependencies == [synth_node]
        assert plan.self_mutate_node is mutate
        assert plan.last_preparation_node is mutate
        assert _child(plan.graph, "S").dependencies == [mutate]
        assert _child(plan.graph, "Assets", "FileAsset1").dependencies == [mutate]

    def test_no_self_mutation_group_by_default(self, synth_step) -> None:
        plan = PipelineGraph(blueprint(synth_step, wave("W", stage("S", stack("App")))))
        assert plan.graph.try_get_child("UpdatePipeline") is None
        assert plan.self_mutate_node is None
        assert _child(plan.graph, "S").dependencies == [_child(plan.graph, "Build", "Synth")]


class TestSteps:
    def test_step_reached_twice_gets_one_node(self, synth_step) -> None:
        shared = sh("Shared", "make", output="out")
        a = sh("A", inputs=[shared.primary_output])
        b = sh("B", depends_on=[shared])
        plan = PipelineGraph(blueprint(synth_step, wave("W", stage("S", stack("App"), pre=[a, b]))))

        assert len(_step_nodes(plan, shared)) == 1
        a_node, b_node = _step_nodes(plan, a)[0], _step_nodes(plan, b)[0]
        assert a_node.dependencies[0] is b_node.dependencies[0]

    def test_step_keeps_first_placement(self, synth_step) -> None:
        check = sh("Check")
        plan = PipelineGraph(blueprint(
            synth_step,
            wave("W", stage("S1", stack("App"), pre=[check]), stage("S2", stack("App"), pre=[check])),
        ))
        node = _child(plan.graph, "W", "S1", "Check")
        assert _child(plan.graph, "W", "S2").try_get_child("Check") is None
        assert node in _child(plan.graph, "W", "S2", "App").dependencies

    def test_dependencies_land_next_to_dependent(self, synth_step) -> None:
        prep = sh("Prep", output="prep")
        smoke = sh("Smoke", inputs=[prep.primary_output])
        plan = PipelineGraph(blueprint(synth_step, wave("W", stage("S", stack("App"), post=[smoke]))))
        prep_node = _child(plan.graph, "S", "Prep")
        # own dependencies first, then the barrier
        assert _child(plan.graph, "S", "Smoke").dependencies == [prep_node, _child(plan.graph, "S", "App")]

    def test_source_steps_always_go_to_source(self) -> None:
        src = source("acme/app")
        lint_src = source("acme/lint-rules")
        plan = PipelineGraph(blueprint(
            synth(input=src),
            wave("W", stage("S", stack("App"), pre=[sh("Lint", inputs=[lint_src.primary_output])])),
        ))
        src_node = _child(plan.graph, "Source", "acme/app")
        assert _child(plan.graph, "Build", "Synth").dependencies == [src_node]
        lint_node = _child(plan.graph, "Source", "acme/lint-rules")
        assert _child(plan.graph, "S", "Lint").dependencies == [lint_node]
        assert _child(plan.graph, "S").try_get_child("acme/lint-rules") is None

    def test_source_step_as_hook_goes_to_source(self, synth_step) -> None:
        src = source("acme/config")
        plan = PipelineGraph(blueprint(synth_step, wave("W", stage("S", stack("App"), pre=[src]))))
        src_node = _child(plan.graph, "Source", "acme/config")
        assert src_node in _child(plan.graph, "S", "App").dependencies

    def test_step_cycle_is_reported(self, synth_step) -> None:
        a = sh("A", output="a")
        b = sh("B", inputs=[a.primary_output])
        a.add_step_dependency(b)
        with pytest.raises(StepCycleError) as exc:
            PipelineGraph(blueprint(synth_step, wave("W", stage("S", stack("App"), pre=[a]))))
        assert exc.value.details["cycle"] == "A -> B -> A"


class TestStages:
    def test_stack_gets_prepare_and_deploy(self, synth_step) -> None:
        app = stack("App")
        plan = PipelineGraph(blueprint(synth_step, wave("W", stage("S", app))))
        group = _child(plan.graph, "S", "App")
        prepare, deploy = _child(group, "Prepare"), _child(group, "Deploy")

        assert isinstance(group.data, StackGroupAnnotation) and group.data.stack is app
        assert isinstance(prepare.data, PrepareAnnotation)
        assert isinstance(deploy.data, ExecuteAnnotation)
        assert deploy.dependencies == [prepare]
        assert prepare.dependencies == [_child(plan.graph, "Build", "Synth")]

    def test_custom_cloud_assembly_producer_goes_into_stage(self, synth_step) -> None:
        custom = sh("CustomSynth", output="custom.out")
        plan = PipelineGraph(blueprint(
            synth_step,
            wave("W", stage("S", stack("App", cloud_assembly=custom.primary_output))),
        ))
        custom_node = _child(plan.graph, "S", "CustomSynth")
        assert _child(plan.graph, "S", "App", "Prepare").dependencies == [custom_node]

    def test_cross_stack_ordering(self, synth_step) -> None:
        s1 = stack("S1")
        s2 = stack("S2", depends_on=[s1])
        # declared before its dependency
        plan = PipelineGraph(blueprint(synth_step, wave("W", stage("St", s2, s1))))
        g1, g2 = _child(plan.graph, "St", "S1"), _child(plan.graph, "St", "S2")

        assert g2.dependencies == [g1]
        assert [[n.id for n in layer] for layer in _child(plan.graph, "St").sorted_layers()] == [["S1"], ["S2"]]

    def test_dependency_on_stack_outside_stage_is_ignored(self, synth_step) -> None:
        other = stack("Other")
        app = stack("App", depends_on=[other])
        plan = PipelineGraph(blueprint(synth_step, wave("W", stage("S", app))))
        assert _child(plan.graph, "S", "App").dependencies == []

    def test_pre_post_barrier(self, synth_step) -> None:
        a, b, c, d = sh("A"), sh("B"), sh("C"), sh("D")
        plan = PipelineGraph(blueprint(
            synth_step,
            wave("W", stage("S", stack("App"), pre=[a, b], post=[c, d])),
        ))
        app = _child(plan.graph, "S", "App")
        na, nb, nc, nd = (_child(plan.graph, "S", n) for n in "ABCD")

        assert app.dependencies == [na, nb]
        assert nc.dependencies == [app]
        assert nd.dependencies == [app]
        assert [[n.id for n in layer] for layer in _child(plan.graph, "S").sorted_layers()] == [
            ["A", "B"], ["App"], ["C", "D"],
        ]


class TestWaves:
    def test_single_stage_wave_is_not_wrapped(self, synth_step) -> None:
        plan = PipelineGraph(blueprint(synth_step, wave("W", stage("Only", stack("X")))))
        assert plan.graph.try_get_child("W") is None
        only = _child(plan.graph, "Only")
        assert isinstance(only.data, GroupAnnotation)
        assert [n.id for n in only.nodes] == ["X"]

    def test_multi_stage_wave_is_wrapped(self, synth_step) -> None:
        plan = PipelineGraph(blueprint(
            synth_step,
            wave("W", stage("A", stack("X")), stage("B", stack("X"))),
        ))
        w = _child(plan.graph, "W")
        assert isinstance(w, Graph)
        assert [n.id for n in w.nodes] == ["A", "B"]
        assert plan.graph.try_get_child("A") is None

    def test_waves_are_sequential(self, synth_step) -> None:
        waves = [
            wave(f"W{i}", stage(f"A{i}", stack("X")), stage(f"B{i}", stack("X")))
            for i in range(3)
        ]
        plan = PipelineGraph(blueprint(synth_step, *waves))
        w0, w1, w2 = (_child(plan.graph, f"W{i}") for i in range(3))
        synth_node = _child(plan.graph, "Build", "Synth")

        assert w0.dependencies == [synth_node]
        assert w1.dependencies == [synth_node, w0]
        assert w2.dependencies == [synth_node, w1]
        assert w0 not in w2.dependencies

    def test_wave_pre_post(self, synth_step) -> None:
        approve, notify = sh("Approve"), sh("Notify")
        plan = PipelineGraph(blueprint(
            synth_step,
            wave("W", stage("A", stack("X")), stage("B", stack("X")), pre=[approve], post=[notify]),
        ))
        w = _child(plan.graph, "W")
        na, nn = _child(w, "Approve"), _child(w, "Notify")
        assert na in _child(w, "A").dependencies
        assert na in _child(w, "B").dependencies
        assert nn.dependencies == [_child(w, "A"), _child(w, "B")]

    def test_single_stage_wave_hooks_attach_to_stage(self, synth_step) -> None:
        plan = PipelineGraph(blueprint(
            synth_step,
            wave("W", stage("S", stack("X")), pre=[sh("Approve")]),
        ))
        approve = _child(plan.graph, "S", "Approve")
        assert _child(plan.graph, "S", "X").dependencies == [approve]


class TestTopLevelNames:
    def test_lone_stages_with_the_same_name_are_fatal(self, synth_step) -> None:
        bp = Blueprint(synth_step, [
            wave("Beta", stage("App", stack("Api"))),
            wave("Prod", stage("App", stack("Api"))),
        ])
        with pytest.raises(GraphInvariantError, match="already taken") as exc:
            PipelineGraph(bp)
        assert exc.value.node == "App"
        assert exc.value.details == {"wave": "Prod"}

    def test_stage_named_like_a_top_level_group_is_fatal(self, synth_step) -> None:
        bp = Blueprint(synth_step, [
            wave("W0", stage("Assets", stack("Db"))),
            wave("W1", stage("Prod", stack("Api", file_asset("h")))),
        ])
        with pytest.raises(GraphInvariantError) as exc:
            PipelineGraph(bp)
        assert exc.value.node == "Assets"

    def test_stage_added_after_the_wave_is_still_checked(self, synth_step) -> None:
        bp = Blueprint(synth_step)
        bp.add_wave("W").add_stage(stage("Source", stack("Db")))
        with pytest.raises(GraphInvariantError):
            PipelineGraph(bp)

    def test_top_level_group_never_reuses_a_wave(self, synth_step) -> None:
        plan = PipelineGraph(blueprint(synth_step, wave("W", stage("S", stack("App")))))
        with pytest.raises(GraphInvariantError, match="taken by a wave"):
            plan._top_level_graph("S")
        assert plan._top_level_graph("Build") is _child(plan.graph, "Build")


class TestAssets:
    def test_same_asset_id_is_published_once(self, synth_step) -> None:
        plan = PipelineGraph(blueprint(
            synth_step,
            wave("W", stage(
                "S",
                stack("A", file_asset("h", "h:1")),
                stack("B", file_asset("h", "h:2"), file_asset("g")),
                stack("C", docker_asset("img"), file_asset("h", "h:1")),
            )),
        ))
        assets = _child(plan.graph, "Assets")
        assert [n.id for n in assets.nodes] == ["FileAsset1", "FileAsset2", "DockerAsset1"]

        h = _child(assets, "FileAsset1")
        assert isinstance(h.data, PublishAssetsAnnotation)
        assert [a.asset_selector for a in h.data.assets] == ["h:1", "h:2"]
        assert plan._file_asset_ctr == 2
        assert plan._docker_asset_ctr == 1

        for name in ("A", "B", "C"):
            assert h in _child(plan.graph, "S", name, "Prepare").dependencies
        assert h.dependencies == [_child(plan.graph, "Build", "Synth")]

    def test_asset_memo_with_wrong_variant_is_fatal(self, synth_step) -> None:
        plan = PipelineGraph(blueprint(synth_step, wave("W", stage("S", stack("A", file_asset("h"))))))
        plan._asset_nodes["h"].data = GroupAnnotation()
        with pytest.raises(GraphInvariantError) as exc:
            plan._publish_asset(file_asset("h", "h:other"))
        assert exc.value.node == "Assets/FileAsset1"
        assert exc.value.details["type"] == "group"


class TestOutput:
    def test_describe_annotation(self, synth_step) -> None:
        plan = PipelineGraph(blueprint(synth_step))
        data = describe_annotation(_child(plan.graph, "Build", "Synth").data)
        assert data == {"type": "step", "step": "ShellStep(Synth)", "build_step": True}
        assert describe_annotation(None) == {}

    def test_describe_unknown_annotation_raises(self) -> None:
        with pytest.raises(GraphInvariantError):
            describe_annotation(object())

    def test_to_dict(self, synth_step) -> None:
        plan = PipelineGraph(blueprint(synth_step, wave("W", stage("S", stack("App")))))
        out = plan.to_dict()
        assert out["id"] == ""
        assert [c["id"] for c in out["children"]] == ["Build", "S"]
        app = out["children"][1]["children"][0]
        assert app["path"] == "S/App"
        assert app["children"][1]["depends_on"] == ["S/App/Prepare"]

    def test_debug_lines(self, synth_step, capsys) -> None:
        set_console(Console(debug=True))
        PipelineGraph(blueprint(synth_step))
        assert "[DEBUG] step Synth -> Build/Synth" in capsys.readouterr().err

    def test_instances_share_nothing(self, synth_step) -> None:
        bp = blueprint(synth_step, wave("W", stage("S", stack("A", file_asset("h")))))
        p1, p2 = PipelineGraph(bp), PipelineGraph(bp)
        assert _child(p1.graph, "Assets", "FileAsset1") is not _child(p2.graph, "Assets", "FileAsset1")
        assert p2._file_asset_ctr == 1
