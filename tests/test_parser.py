"""Tests for Tree-sitter test-declaration and import extraction."""

import pytest

from impact_selector.errors import ParseFailure
from impact_selector.parser import TestDeclarationExtractor, language_for


@pytest.fixture
def extractor() -> TestDeclarationExtractor:
    return TestDeclarationExtractor()


def test_language_for_extensions():
    assert language_for("a/b.spec.ts") == "typescript"
    assert language_for("comp.test.tsx") == "tsx"
    assert language_for("x.mjs") == "javascript"
    assert language_for("README.md") is None


def test_extracts_literal_names_and_spans(extractor, login_spec_source: str):
    decls = extractor.extract(login_spec_source, "login.spec.ts")

    assert [d.name for d in decls[:2]] == ["logs in with valid credentials", "shows error on bad password"]
    bad_password = decls[1]
    assert (bad_password.start_line, bad_password.end_line) == (8, 11)
    assert bad_password.is_dynamic is False


def test_template_with_interpolation_is_dynamic(extractor, login_spec_source: str):
    decls = extractor.extract(login_spec_source, "login.spec.ts")
    dynamic = decls[2]
    assert dynamic.is_dynamic is True
    assert dynamic.name == "handles user ${'bob'}"


def test_template_without_interpolation_is_literal(extractor):
    decls = extractor.extract("it(`plain name`, () => {});\n", "a.spec.ts")
    assert decls[0].name == "plain name"
    assert decls[0].is_dynamic is False


def test_identifier_name_is_dynamic(extractor):
    source = "const title = 'x';\ntest(title, () => {});\ntest(makeName(1), () => {});\n"
    decls = extractor.extract(source, "a.spec.ts")
    assert all(d.is_dynamic for d in decls)
    assert decls[0].name == "[dynamic: title]"
    assert decls[1].name == "[dynamic: makeName(1)]"


def test_nested_describe_and_it(extractor):
    source = (
        "describe('cart', () => {\n"
        "  it('adds item', () => {\n"
        "    expect(1).toBe(1);\n"
        "  });\n"
        "});\n"
    )
    decls = extractor.extract(source, "cart.test.js")

    assert [(d.name, d.start_line, d.end_line) for d in decls] == [
        ("cart", 1, 5),
        ("adds item", 2, 4),
    ]


def test_escape_sequences_are_decoded(extractor):
    decls = extractor.extract("test('it\\'s \"quoted\"', () => {});\n", "a.spec.ts")
    assert decls[0].name == "it's \"quoted\""


def test_unrecognized_callee_is_ignored(extractor):
    source = "test.skip('skipped', () => {});\nhelper('not a test');\n"
    assert extractor.extract(source, "a.spec.ts") == []


def test_recognized_names_are_configurable():
    extractor = TestDeclarationExtractor(["test", "test.describe"])
    source = "test.describe('group', () => {\n  test('inner', () => {});\n});\n"
    names = [d.name for d in extractor.extract(source, "a.spec.ts")]
    assert names == ["group", "inner"]


def test_typescript_generics_parse(extractor):
    source = "function id<T>(x: T): T { return x; }\ntest('typed', async () => { id<number>(1); });\n"
    assert [d.name for d in extractor.extract(source, "a.spec.ts")] == ["typed"]


def test_tsx_requires_tsx_grammar(extractor):
    source = "test('renders', () => {\n  render(<Button label=\"ok\" />);\n});\n"
    assert [d.name for d in extractor.extract(source, "button.spec.tsx")] == ["renders"]


def test_syntax_error_raises_parse_failure(extractor):
    with pytest.raises(ParseFailure) as excinfo:
        extractor.extract("test('broken', () => {\n", "broken.spec.ts")
    assert excinfo.value.path == "broken.spec.ts"


def test_unsupported_file_raises_parse_failure(extractor):
    with pytest.raises(ParseFailure):
        extractor.extract("print('x')", "script.py")


def test_extract_imports(extractor):
    source = (
        "import { a } from './helpers/a';\n"
        "import * as b from \"../b.js\";\n"
        "import '@playwright/test';\n"
        "export { c } from './c';\n"
        "const d = require('./d');\n"
        "async function load() { return import('./e'); }\n"
    )
    imports = extractor.extract_imports(source, "x.ts")
    assert imports == {"./helpers/a", "../b.js", "@playwright/test", "./c", "./d", "./e"}
