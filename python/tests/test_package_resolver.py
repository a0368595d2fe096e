import json

import pytest

from reconcile.executor import SandboxUnavailableError
from reconcile.models import CommandResult
from reconcile.package_resolver import base_name, package_id, partition, resolve, scan_imports
from reconcile.paths import is_scaffold_file, normalize_path


class TestNames:

    @pytest.mark.parametrize("spec,expected", [
        ("axios", "axios"),
        ("axios@1.6.0", "axios"),
        ("@radix-ui/react-slot", "@radix-ui/react-slot"),
        ("@radix-ui/react-slot@1.0.2", "@radix-ui/react-slot"),
    ])
    def test_base_name(self, spec, expected):
        assert base_name(spec) == expected

    @pytest.mark.parametrize("spec,expected", [
        ("lodash/debounce", "lodash"),
        ("@tanstack/react-query/devtools", "@tanstack/react-query"),
        ("./Header", None),
        ("@/lib/utils", None),
        ("node:path", None),
        ("fs", None),
        ("@scope", None),
    ])
    def test_package_id(self, spec, expected):
        assert package_id(spec) == expected


class TestScanImports:

    def test_collects_external_packages_once(self):
        content = "\n".join([
            "import React, { useState } from 'react'",
            "import { motion } from 'framer-motion'",
            "import * as Icons from \"lucide-react\"",
            "import Header from './components/Header'",
            "import fs from 'fs'",
            "import { Slot } from '@radix-ui/react-slot/dist'",
            "import 'framer-motion'",
        ])
        assert scan_imports(content) == ["framer-motion", "lucide-react", "@radix-ui/react-slot"]


class TestResolve:

    def test_union_deduped_and_filtered(self):
        explicit = ["axios", "axios", "", "  ", None, 5, "react", "react-dom@18"]
        parsed = ["axios", "lucide-react"]
        assert resolve(explicit, parsed) == ["axios", "lucide-react"]

    def test_empty_inputs(self):
        assert resolve(None, None) == []

    def test_versions_of_one_package_collapse_to_first_spelling(self):
        assert resolve(["lodash", "lodash@4.17.21"], []) == ["lodash"]
        assert resolve(["@radix-ui/react-dialog@1.0.5"], ["@radix-ui/react-dialog"]) == \
            ["@radix-ui/react-dialog@1.0.5"]


class TestPartition:

    @pytest.mark.asyncio
    async def test_declared_and_materialized_count_as_installed(self, executor):
        executor.files["package.json"] = json.dumps({
            "dependencies": {"react": "^18", "lucide-react": "^0.300.0"},
        })
        executor.command_results["ls -d node_modules/axios node_modules/zod 2>/dev/null"] = \
            CommandResult(stdout="node_modules/axios\n")

        already, need = await partition(executor, ["lucide-react", "axios", "zod"])

        assert already == ["lucide-react", "axios"]
        assert need == ["zod"]

    @pytest.mark.asyncio
    async def test_check_failure_installs_everything(self, executor):
        del executor.files["package.json"]
        already, need = await partition(executor, ["axios"])
        assert already == []
        assert need == ["axios"]

    @pytest.mark.asyncio
    async def test_lost_sandbox_propagates(self, executor):
        executor.unavailable = True
        with pytest.raises(SandboxUnavailableError):
            await partition(executor, ["axios"])


class TestPaths:

    @pytest.mark.parametrize("path,expected", [
        ("/Header.jsx", "src/Header.jsx"),
        ("src/App.jsx", "src/App.jsx"),
        ("/src/index.css", "src/index.css"),
        ("components/Nav.jsx", "src/components/Nav.jsx"),
        ("public/logo.svg", "public/logo.svg"),
        ("index.html", "index.html"),
        ("tailwind.config.js", "tailwind.config.js"),
    ])
    def test_normalize_path(self, path, expected):
        assert normalize_path(path) == expected

    def test_scaffold_files(self):
        assert is_scaffold_file("vite.config.js")
        assert is_scaffold_file("/package.json")
        assert not is_scaffold_file("src/App.jsx")
