"""
Integration tests for incremental builds.

These run full builds through AvroGenerator against real directories and
check the build-level guarantees:
- Idempotence and staleness
- Output-loss detection
- Cross-file resolution and batch isolation
- Namespace enforcement
- Registry isolation across clean
- Removal of generated sources for deleted schemas
"""

import json
import os
from pathlib import Path
from unittest.mock import patch

import pytest

from avrogen import generator as generator_module
from avrogen.config import CacheStrategy, GeneratorSettings
from avrogen.errors import SchemaParseError
from avrogen.generator import AvroGenerator
from avrogen.schema.registry import get_registry, snapshot_registry
from avrogen.schema.types import RecordSchema


def write(path: Path, data) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(data if isinstance(data, str) else json.dumps(data))
    return path


def record(name, fields=(), namespace=None):
    data = {"type": "record", "name": name, "fields": list(fields)}
    if namespace:
        data["namespace"] = namespace
    return data


def bump_mtime(path: Path) -> None:
    stat = path.stat()
    os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns + 10_000_000_000))


@pytest.fixture
def project(tmp_path):
    """A project layout with one source directory."""
    src = tmp_path / "src" / "main" / "avro"
    src.mkdir(parents=True)
    settings = GeneratorSettings(
        source_dirs=[src],
        output_dir=tmp_path / "target" / "compiled_avro",
        cache_dir=tmp_path / "target" / "cache",
    )
    return src, settings


@pytest.fixture
def counted(monkeypatch):
    """Count real compilations run by the generator."""
    calls = []
    real = generator_module.compile_source_dir

    def counting(*args, **kwargs):
        calls.append(args[0])
        return real(*args, **kwargs)

    monkeypatch.setattr(generator_module, "compile_source_dir", counting)
    return calls


class TestIncrementalBuild:
    """Tests for idempotence and staleness."""

    def test_second_build_is_a_cache_hit(self, project, counted):
        src, settings = project
        write(src / "a.avsc", record("Foo"))
        generator = AvroGenerator(settings)

        first = generator.generate()
        second = generator.generate()

        assert first == second
        assert len(counted) == 1

    def test_modified_input_recompiles(self, project, counted):
        src, settings = project
        source = write(src / "a.avsc", record("Foo"))
        generator = AvroGenerator(settings)
        generator.generate()

        bump_mtime(source)
        generator.generate()

        assert len(counted) == 2

    def test_deleted_output_recompiles(self, project, counted):
        """Losing a generated file forces a rebuild that restores it."""
        src, settings = project
        write(src / "a.avsc", record("Foo"))
        generator = AvroGenerator(settings)
        (output,) = generator.generate()

        output.unlink()
        outputs = generator.generate()

        assert len(counted) == 2
        assert output in outputs
        assert output.exists()

    def test_status(self, project):
        src, settings = project
        source = write(src / "a.avsc", record("Foo"))
        generator = AvroGenerator(settings)

        assert generator.status() == {src: True}
        generator.generate()
        assert generator.status() == {src: False}
        bump_mtime(source)
        assert generator.status() == {src: True}

    def test_hash_strategy(self, project, counted):
        src, settings = project
        source = write(src / "a.avsc", record("Foo"))
        generator = AvroGenerator(settings.model_copy(update={"cache_strategy": CacheStrategy.HASH}))
        generator.generate()

        bump_mtime(source)
        generator.generate()

        assert len(counted) == 1

    def test_fatal_error_leaves_directory_stale(self, project, counted):
        src, settings = project
        write(src / "bad.avdl", "protocol Broken {")
        generator = AvroGenerator(settings)

        with pytest.raises(SchemaParseError):
            generator.generate()

        assert generator.status() == {src: True}
        with pytest.raises(SchemaParseError):
            generator.generate()
        assert len(counted) == 2


class TestFooBarScenario:
    """a.avsc defines Foo, b.avsc defines Bar referencing Foo."""

    def test_build_delete_rebuild(self, project, counted):
        src, settings = project
        out = settings.output_dir
        write(src / "a.avsc", record("Foo"))
        b = write(src / "b.avsc", record("Bar", [{"name": "f", "type": "Foo"}]))
        generator = AvroGenerator(settings)

        first = generator.generate()

        assert first == [out / "Bar.py", out / "Foo.py"]

        b.unlink()
        second = generator.generate()

        assert len(counted) == 2
        assert second == [out / "Foo.py"]
        assert not (out / "Bar.py").exists()


class TestBatchSemantics:
    """Tests for cross-file resolution and failure isolation."""

    def test_malformed_file_does_not_block_siblings(self, project):
        src, settings = project
        out = settings.output_dir
        write(src / "a.avsc", "{ broken")
        write(src / "b.avsc", record("Bar", [{"name": "f", "type": "Foo"}]))
        write(src / "c.avsc", record("Baz"))

        outputs = AvroGenerator(settings).generate()

        assert outputs == [out / "Baz.py"]

    def test_namespace_enforcement(self, project):
        src, settings = project
        out = settings.output_dir
        write(src / "misplaced" / "User.avsc", record("User", namespace="com.example"))

        enforced = AvroGenerator(settings.model_copy(update={"use_namespace": True}))
        assert enforced.generate() == []

        enforced.clean()
        relaxed = AvroGenerator(settings)
        assert relaxed.generate() == [out / "com" / "example" / "User.py"]

    def test_all_formats_in_one_directory(self, project):
        src, settings = project
        write(
            src / "mail.avdl",
            '@namespace("mail") protocol Mail { record Letter { string to; } void post(Letter l); }',
        )
        write(src / "user.avsc", record("User", namespace="people"))
        write(
            src / "api.avpr",
            {"protocol": "Api", "namespace": "api", "messages": {"ping": {"request": [], "response": "null"}}},
        )

        outputs = AvroGenerator(settings).generate()

        rel = [p.relative_to(settings.output_dir).as_posix() for p in outputs]
        assert rel == ["api/Api.py", "mail/Letter.py", "mail/Mail.py", "people/User.py"]


class TestRegistryIsolation:
    """Tests for registry snapshots and clean."""

    def test_builds_never_publish_types(self, project):
        src, settings = project
        write(src / "a.avsc", record("Foo"))

        AvroGenerator(settings).generate()

        assert "Foo" not in get_registry()

    def test_clean_resets_registry(self, project, tmp_path):
        """After clean, a build cannot see types seeded before it."""
        src, settings = project
        get_registry().add_types([RecordSchema(type="record", name="Seeded")])
        write(src / "a.avsc", record("Uses", [{"name": "s", "type": "Seeded"}]))
        generator = AvroGenerator(settings)
        assert generator.generate() == [settings.output_dir / "Uses.py"]

        generator.clean()

        assert "Seeded" not in snapshot_registry()
        assert not settings.output_dir.exists()
        assert not settings.cache_dir.exists()
        assert generator.generate() == []

    def test_sibling_directories_do_not_share_types(self, tmp_path):
        first, second = tmp_path / "first", tmp_path / "second"
        write(first / "a.avsc", record("Foo"))
        write(second / "b.avsc", record("Bar", [{"name": "f", "type": "Foo"}]))
        settings = GeneratorSettings(
            source_dirs=[first, second],
            output_dir=tmp_path / "out",
            cache_dir=tmp_path / "cache",
        )

        outputs = AvroGenerator(settings).generate()

        assert outputs == [tmp_path / "out" / "Foo.py"]


class TestParallelBuild:
    """Tests for compiling source directories in parallel."""

    def test_workers(self, tmp_path):
        dirs = [tmp_path / f"src{i}" for i in range(4)]
        for i, d in enumerate(dirs):
            write(d / "t.avsc", record(f"T{i}", namespace=f"ns{i}"))
        settings = GeneratorSettings(
            source_dirs=dirs,
            output_dir=tmp_path / "out",
            cache_dir=tmp_path / "cache",
            max_workers=4,
        )

        with patch.object(generator_module, "ThreadPoolExecutor", wraps=generator_module.ThreadPoolExecutor) as pool:
            outputs = AvroGenerator(settings).generate()

        assert pool.called
        assert [p.relative_to(tmp_path / "out").as_posix() for p in outputs] == [
            f"ns{i}/T{i}.py" for i in range(4)
        ]
