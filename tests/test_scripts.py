import textwrap

import pytest

from scenekit.components import ScriptMetadata
from scenekit.scripts import (
    ScriptLexError,
    ScriptLexer,
    extract_sections,
    indent_code,
    script_template,
)


def _dedent(source: str) -> str:
    return textwrap.dedent(source).strip("\n")


def test_setup_ready_and_update_are_separated() -> None:
    code = _dedent(
        """
        let speed = 120;

        function ready() {
          self.color = "red";
        }

        export function update(dt) {
          self.move(speed * dt, 0);
        }
        """
    )

    sections = extract_sections(code)

    assert sections.setup == "let speed = 120;"
    assert sections.ready is not None
    assert sections.ready.params == ""
    assert sections.ready.body == 'self.color = "red";'
    assert sections.update is not None
    assert sections.update.params == "dt"
    assert sections.update.body == "self.move(speed * dt, 0);"
    assert sections.fallback is False


def test_braces_inside_strings_comments_and_regex_are_ignored() -> None:
    code = _dedent(
        """
        const label = "{not a block";
        // function update() { in a comment
        const pattern = /[{}]+/g;
        const tpl = `${label} }`;
        function ready() {
          const text = "}";
          /* } */
        }
        """
    )

    sections = extract_sections(code)

    assert sections.fallback is False
    assert sections.update is None
    assert sections.ready is not None
    assert 'const text = "}";' in sections.ready.body
    assert "const pattern = /[{}]+/g;" in sections.setup


def test_nested_functions_named_like_sections_stay_in_setup() -> None:
    code = _dedent(
        """
        const helpers = {
          update() { return 1; },
        };
        function wrapper() {
          function ready() {}
        }
        """
    )

    sections = extract_sections(code)

    assert sections.ready is None
    assert sections.update is None
    assert "function wrapper()" in sections.setup
    assert sections.has_lifecycle is False


def test_script_without_sections_is_all_setup() -> None:
    sections = extract_sections("self.hidden = false;\n")

    assert sections.setup == "self.hidden = false;"
    assert sections.has_lifecycle is False


def test_empty_script() -> None:
    sections = extract_sections("   \n  ")

    assert sections.is_empty
    assert sections.fallback is False


@pytest.mark.parametrize(
    "code",
    [
        "function ready() {\n  if (x) {\n}\n",
        "function ready() {}\nfunction ready() {}\n",
        'const s = "unterminated;\nfunction update() {}\n',
    ],
)
def test_ambiguous_scripts_fall_back_to_setup(code: str) -> None:
    sections = extract_sections(code)

    assert sections.fallback is True
    assert sections.ready is None
    assert sections.update is None
    assert sections.setup


def test_lexer_reports_unterminated_comment() -> None:
    with pytest.raises(ScriptLexError):
        ScriptLexer("/* never closed").tokenize()


def test_division_is_not_mistaken_for_regex() -> None:
    tokens = ScriptLexer("const half = width / 2 / 1;").tokenize()

    assert [token.type for token in tokens].count("REGEX") == 0


def test_template_literal_contents_are_not_dedented() -> None:
    code = "function update(dt) {\n    log(`frame\n  ${dt}  \n`);\n}\n"

    sections = extract_sections(code)

    assert sections.update.body == "log(`frame\n  ${dt}  \n`);"
    assert indent_code(sections.update.body, "  ") == ["  log(`frame", "  ${dt}  ", "`);"]


def test_default_script_template() -> None:
    source = script_template("Hero")

    assert source.startswith("// Hero\n")
    assert "export function ready() {\n  // Called once when the object joins the scene\n}" in source
    assert "export function update(dt) {\n" in source
    assert source.endswith("}\n")

    sections = extract_sections(source)
    assert sections.ready is not None
    assert sections.update is not None
    assert sections.update.params == "dt"


def test_script_template_follows_metadata() -> None:
    metadata = ScriptMetadata(
        include_update=False, references=["Enemy", "Enemy", " ", "9 lives"]
    )

    source = script_template("Hero", metadata, tags={"Enemy": "enemy"})

    assert "let Enemy = null;\nlet Enemy_1 = null;\nlet ref4_9_lives = null;" in source
    assert '  Enemy = ctx.get("enemy")[0] ?? null;' in source
    assert '  ref4_9_lives = ctx.get("9 lives")[0] ?? null;' in source
    assert "update(dt)" not in source


def test_script_template_without_lifecycle_functions() -> None:
    source = script_template(
        "Hero", ScriptMetadata(include_ready=False, include_update=False)
    )

    assert "function" not in source
    assert extract_sections(source).has_lifecycle is False
