"""Tests for the module import index and transitive traversal."""

from pathlib import Path
from typing import Dict

from impact_selector.config_manager import SelectorSettings
from impact_selector.graph import ModuleGraphIndex, file_keys, specifier_key


def _project(root: Path, files: Dict[str, str]) -> Path:
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root


def test_specifier_key_strips_extension_and_directories():
    exts = SelectorSettings().source_extensions
    assert specifier_key("../lib/auth.js", exts) == "auth"
    assert specifier_key("./login.spec", exts) == "login.spec"
    assert specifier_key("lodash", exts) == "lodash"
    assert specifier_key(".", exts) is None


def test_file_keys_for_index_files():
    exts = SelectorSettings().source_extensions
    assert file_keys("src/utils/index.ts", exts) == ("index", "utils")
    assert file_keys("src/auth.ts", exts) == ("auth",)


def test_importers_of_is_direct_only(temp_dir: Path, settings):
    _project(temp_dir, {
        "src/helper2.ts": "export const x = 1;\n",
        "src/helper1.ts": "import { x } from './helper2';\nexport const y = x;\n",
        "tests/a.spec.ts": "import { y } from '../src/helper1';\ntest('a', () => {});\n",
    })
    index, diagnostics = ModuleGraphIndex.build(temp_dir, settings)

    assert diagnostics == []
    assert index.importers_of("src/helper2.ts") == ["src/helper1.ts"]
    assert index.importers_of("src/helper1.ts") == ["tests/a.spec.ts"]


def test_transitive_chain_reaches_test(temp_dir: Path, settings):
    _project(temp_dir, {
        "src/helper2.ts": "export const x = 1;\n",
        "src/helper1.ts": "import { x } from './helper2';\nexport const y = x;\n",
        "tests/a.spec.ts": "import { y } from '../src/helper1';\ntest('a', () => {});\n",
        "tests/unrelated.spec.ts": "test('b', () => {});\n",
    })
    index, _ = ModuleGraphIndex.build(temp_dir, settings)

    assert index.transitive_test_importers("src/helper2.ts") == ["tests/a.spec.ts"]


def test_import_cycle_terminates(temp_dir: Path, settings):
    _project(temp_dir, {
        "src/helper1.ts": "import { b } from './helper2';\nexport const a = 1;\n",
        "src/helper2.ts": "import { a } from './helper1';\nexport const b = 2;\n",
        "tests/cycle.spec.ts": "import { a } from '../src/helper1';\ntest('c', () => {});\n",
    })
    index, _ = ModuleGraphIndex.build(temp_dir, settings)

    assert index.transitive_test_importers("src/helper2.ts") == ["tests/cycle.spec.ts"]
    assert index.transitive_test_importers("src/helper1.ts") == ["tests/cycle.spec.ts"]


def test_test_importers_are_leaves(temp_dir: Path, settings):
    _project(temp_dir, {
        "src/core.ts": "export const c = 1;\n",
        "tests/shared.spec.ts": "import { c } from '../src/core';\nexport const s = c;\ntest('s', () => {});\n",
        "tests/consumer.spec.ts": "import { s } from './shared.spec';\ntest('x', () => {});\n",
    })
    index, _ = ModuleGraphIndex.build(temp_dir, settings)

    assert index.transitive_test_importers("src/core.ts") == ["tests/shared.spec.ts"]


def test_vendored_directories_are_not_indexed(temp_dir: Path, settings):
    _project(temp_dir, {
        "src/auth.ts": "export const a = 1;\n",
        "node_modules/pkg/auth.spec.ts": "import { a } from '../../src/auth';\ntest('v', () => {});\n",
        "tests/auth.spec.ts": "import { a } from '../src/auth';\ntest('t', () => {});\n",
    })
    index, _ = ModuleGraphIndex.build(temp_dir, settings)

    assert all("node_modules" not in p for p in index.paths)
    assert index.transitive_test_importers("src/auth.ts") == ["tests/auth.spec.ts"]


def test_index_file_resolves_by_directory_name(temp_dir: Path, settings):
    _project(temp_dir, {
        "src/utils/index.ts": "export const u = 1;\n",
        "tests/u.spec.ts": "import { u } from '../src/utils';\ntest('u', () => {});\n",
    })
    index, _ = ModuleGraphIndex.build(temp_dir, settings)

    assert index.transitive_test_importers("src/utils/index.ts") == ["tests/u.spec.ts"]


def test_unparseable_file_is_indexed_without_imports(temp_dir: Path, settings):
    _project(temp_dir, {
        "src/broken.ts": "import { a from './a'\n",
        "src/a.ts": "export const a = 1;\n",
    })
    index, diagnostics = ModuleGraphIndex.build(temp_dir, settings)

    assert "src/broken.ts" in index
    assert [d.path for d in diagnostics] == ["src/broken.ts"]
    assert diagnostics[0].kind == "parse_failure"
    assert index.importers_of("src/a.ts") == []


def test_absolute_paths_are_accepted(temp_dir: Path, settings):
    _project(temp_dir, {
        "src/auth.ts": "export const a = 1;\n",
        "tests/auth.spec.ts": "import { a } from '../src/auth';\ntest('t', () => {});\n",
    })
    index, _ = ModuleGraphIndex.build(temp_dir, settings)

    absolute = str((temp_dir / "src" / "auth.ts").resolve())
    assert index.transitive_test_importers(absolute) == ["tests/auth.spec.ts"]


def test_module_extensions_are_indexed_and_stripped(temp_dir: Path, settings):
    exts = settings.source_extensions
    assert file_keys("src/loader.mts", exts) == ("loader",)
    assert specifier_key("./config.mjs", exts) == "config"

    _project(temp_dir, {
        "src/loader.mts": "export const load = () => 1;\n",
        "src/legacy.cts": "const { load } = require('./loader.mjs');\nmodule.exports = load;\n",
        "tests/load.spec.ts": "import legacy from '../src/legacy.cjs';\ntest('loads', () => {});\n",
    })
    index, _ = ModuleGraphIndex.build(temp_dir, settings)

    assert "src/loader.mts" in index
    assert index.transitive_test_importers("src/loader.mts") == ["tests/load.spec.ts"]
