import pytest
from core.errors import ConfigInvariantError
from namelist_tree import (
    GenerationContext,
    build_key_stem,
    compute_signature,
    resolve_tree,
    sanitize_key,
)
from parsing import parse_namelist

from models import ConfigNode

CONTEXT = GenerationContext(lore="The river clans.", model="m", temperature=0.5)


def test_scenario_paths_stems_and_signatures(scenario_dsl):
    tree = resolve_tree(parse_namelist(scenario_dsl), CONTEXT, default_prefix="HUM_")

    name1 = tree.find("NAME", "character_names", "name1")
    name2 = tree.find("NAME", "character_names", "name2")
    assert name1.path == ("NAME", "character_names", "name1")
    assert name1.effective_prefix == "HUM_"
    assert name1.key_stem == "HUM_CHARACTER_NAMES_NAME1"
    assert name1.signature == compute_signature(
        ("NAME", "character_names", "name1"), "HUM_", None, "name1", CONTEXT
    )
    assert name2.signature is None
    assert name2.key_stem is None
    assert [n.name for n in tree.generation_targets()] == ["name1"]


def test_arena_is_pre_order_with_index_links(scenario_dsl):
    tree = resolve_tree(parse_namelist(scenario_dsl), CONTEXT)
    assert [n.name for n in tree] == ["NAME", "character_names", "name1", "name2"]
    assert tree.root.parent is None
    assert [c.name for c in tree.children_of(1)] == ["name1", "name2"]
    assert tree[2].parent == 1
    assert tree[2].depth == 2


def _chain(depth: int, prefixes: dict[int, str]) -> ConfigNode:
    node = ConfigNode(name=f"level{depth}", prefix=prefixes.get(depth))
    for level in range(depth - 1, -1, -1):
        node = ConfigNode(
            name=f"level{level}", prefix=prefixes.get(level), children=(node,)
        )
    return node


@pytest.mark.parametrize(
    "prefixes",
    [{}, {0: "A_"}, {0: "A_", 3: "B_"}, {2: "C_", 5: "", 7: "D_"}],
)
def test_effective_prefix_is_nearest_declaration(prefixes):
    tree = resolve_tree(_chain(9, prefixes), CONTEXT, default_prefix="DEF_")
    for resolved in tree:
        applicable = [level for level in prefixes if level <= resolved.depth]
        expected = prefixes[max(applicable)] if applicable else "DEF_"
        assert resolved.effective_prefix == expected


def test_lore_change_changes_signature_only_for_generated_leaves(scenario_dsl):
    root = parse_namelist(scenario_dsl)
    before = resolve_tree(root, CONTEXT)
    after = resolve_tree(
        root, GenerationContext(lore="New lore.", model="m", temperature=0.5)
    )
    for old, new in zip(before, after):
        if old.is_generated:
            assert old.signature != new.signature
        else:
            assert old.signature is None and new.signature is None


def test_signature_is_deterministic(scenario_dsl):
    first = resolve_tree(parse_namelist(scenario_dsl), CONTEXT)
    second = resolve_tree(parse_namelist(scenario_dsl), CONTEXT)
    assert [n.signature for n in first] == [n.signature for n in second]


def test_duplicate_explicit_keys_across_cousins():
    root = parse_namelist("N = { a = { K } b = { c = { K } } }")
    with pytest.raises(ConfigInvariantError, match="'K'"):
        resolve_tree(root, CONTEXT)


def test_generated_namespaces_must_not_overlap():
    root = parse_namelist("N = { a_b = { } a = { b = { } } }")
    with pytest.raises(ConfigInvariantError, match="A_B"):
        resolve_tree(root, CONTEXT)


def test_explicit_key_inside_generated_namespace():
    root = parse_namelist("N = { a = { } b = { HUM_A_ALARIC } }")
    with pytest.raises(ConfigInvariantError, match="HUM_A_ALARIC"):
        resolve_tree(root, CONTEXT, default_prefix="HUM_")


def test_sanitize_key_and_stems():
    assert sanitize_key("O'Brien-Smith the 2nd!") == "O_BRIEN_SMITH_THE_2ND_"
    assert sanitize_key("Zoë") == "ZO_"
    assert build_key_stem(("ROOT",), "") == "ROOT"
    assert build_key_stem(("ROOT", "ships", "generic"), "HUM__") == "HUM_SHIPS_GENERIC"


def test_key_for_generated_name(scenario_dsl):
    tree = resolve_tree(parse_namelist(scenario_dsl), CONTEXT, default_prefix="HUM_")
    name1 = tree.find("NAME", "character_names", "name1")
    assert name1.key_for("Alaric") == "HUM_CHARACTER_NAMES_NAME1_ALARIC"
    with pytest.raises(ValueError):
        tree.find("NAME", "character_names", "name2").key_for("x")


def test_sibling_namespace_nested_in_another_is_rejected():
    root = parse_namelist("N = { a = { } a_b = { } }")
    with pytest.raises(ConfigInvariantError, match="HUM_A_B.*inside 'HUM_A'"):
        resolve_tree(root, CONTEXT, default_prefix="HUM_")


def test_sampling_and_template_are_part_of_signature(scenario_dsl):
    root = parse_namelist(scenario_dsl)
    path = ("NAME", "character_names", "name1")

    def signature(context):
        return resolve_tree(root, context).find(*path).signature

    base = signature(CONTEXT)
    assert signature(
        GenerationContext(lore=CONTEXT.lore, model="m", temperature=0.5, top_p=0.9)
    ) != base
    assert signature(
        GenerationContext(
            lore=CONTEXT.lore, model="m", temperature=0.5, template="other.j2:abc"
        )
    ) != base
