"""Tests for rendercache.renderers module."""

import tarfile

import pytest

from rendercache.errors import AccessError, RenderError
from rendercache.renderers import (
    RenderedArchivesCompiler,
    SubstitutionArchivesCompiler,
    flatten_properties,
    load_renderer,
)
from rendercache.schemas import Instance, JobDescription, JobTemplate, PropertyDefinition


def _job(tmp_path, name, templates, properties=()):
    """Materialized job with template sources written under tmp_path/name/templates."""
    extracted = tmp_path / name
    for src, (_, source) in templates.items():
        path = extracted / "templates" / src
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(source)
    return JobDescription(
        name=name,
        templates=[JobTemplate(src, dst) for src, (dst, _) in templates.items()],
        properties=list(properties),
        extracted_path=extracted,
    )


def _members(archive):
    with tarfile.open(archive, "r:gz") as tar:
        return {
            m.name: tar.extractfile(m).read().decode()
            for m in tar.getmembers() if m.isfile()
        }


@pytest.fixture
def renderer(tmp_path):
    return SubstitutionArchivesCompiler(tmp_path / "work")


class TestFlattenProperties:
    def test_nested(self):
        assert flatten_properties({"router": {"port": 80, "tls": {"enabled": True}}, "name": "x"}) == {
            "router.port": 80,
            "router.tls.enabled": True,
            "name": "x",
        }

    def test_empty(self):
        assert flatten_properties({}) == {}


class TestSubstitutionArchivesCompiler:
    def test_renders_instance_properties(self, tmp_path, renderer):
        job = _job(tmp_path, "router", {"router.conf": ("config/router.conf", "port=${router.port} idx=${spec.index}")})

        archive = renderer.compile([job], Instance("router", 3, properties={"router": {"port": 9090}}))

        assert _members(archive) == {"router/config/router.conf": "port=9090 idx=3"}

    def test_falls_back_to_job_defaults(self, tmp_path, renderer):
        job = _job(
            tmp_path, "router",
            {"router.conf": ("router.conf", "port=${router.port}")},
            properties=[PropertyDefinition("router.port", default=8080)],
        )

        archive = renderer.compile([job], Instance("router", 0))

        assert _members(archive) == {"router/router.conf": "port=8080"}

    def test_instance_overrides_default(self, tmp_path, renderer):
        job = _job(
            tmp_path, "router",
            {"router.conf": ("router.conf", "port=${router.port}")},
            properties=[PropertyDefinition("router.port", default=8080)],
        )

        archive = renderer.compile([job], Instance("router", 0, properties={"router.port": 1}))

        assert _members(archive) == {"router/router.conf": "port=1"}

    def test_dollar_escape(self, tmp_path, renderer):
        job = _job(tmp_path, "j", {"run.sh": ("bin/run", "echo $$HOME ${spec.job}")})

        archive = renderer.compile([job], Instance("web", 0))

        assert _members(archive) == {"j/bin/run": "echo $HOME web"}

    def test_multiple_jobs_in_one_archive(self, tmp_path, renderer):
        a = _job(tmp_path, "a", {"a.conf": ("a.conf", "a")})
        b = _job(tmp_path, "b", {"b.conf": ("b.conf", "b")})

        archive = renderer.compile([a, b], Instance("ab", 0))

        assert _members(archive) == {"a/a.conf": "a", "b/b.conf": "b"}

    def test_unknown_property_raises_and_leaves_nothing(self, tmp_path, renderer):
        job = _job(tmp_path, "router", {"router.conf": ("router.conf", "port=${router.port}")})

        with pytest.raises(RenderError, match="unknown property 'router.port'"):
            renderer.compile([job], Instance("router", 0))

        assert list((tmp_path / "work").iterdir()) == []

    def test_missing_template_source(self, tmp_path, renderer):
        job = JobDescription(
            name="router",
            templates=[JobTemplate("gone.conf", "gone.conf")],
            extracted_path=tmp_path,
        )

        with pytest.raises(RenderError, match="template source not found"):
            renderer.compile([job], Instance("router", 0))

    def test_destination_cannot_escape(self, tmp_path, renderer):
        job = _job(tmp_path, "router", {"x.conf": ("../../evil", "x")})

        with pytest.raises(RenderError, match="escapes"):
            renderer.compile([job], Instance("router", 0))

    def test_clean_up_is_safe_twice(self, tmp_path, renderer):
        job = _job(tmp_path, "a", {"a.conf": ("a.conf", "a")})
        archive = renderer.compile([job], Instance("a", 0))

        renderer.clean_up(archive)
        renderer.clean_up(archive)

        assert not archive.exists()

    def test_render_error_is_access_error(self):
        assert issubclass(RenderError, AccessError)


class TestLoadRenderer:
    def test_loads_class_with_kwargs(self, tmp_path):
        renderer = load_renderer(
            "rendercache.renderers:SubstitutionArchivesCompiler", work_dir=tmp_path
        )
        assert isinstance(renderer, SubstitutionArchivesCompiler)

    @pytest.mark.parametrize("spec", ["no_colon", "rendercache.renderers:", ":Thing"])
    def test_malformed_spec(self, spec):
        with pytest.raises(ValueError, match="module:attribute"):
            load_renderer(spec)

    def test_missing_module(self):
        with pytest.raises(ValueError, match="Cannot import"):
            load_renderer("rendercache.nope:Thing")

    def test_missing_attribute(self):
        with pytest.raises(ValueError, match="not found"):
            load_renderer("rendercache.renderers:Nope")

    def test_not_a_renderer(self):
        with pytest.raises(ValueError, match="not a RenderedArchivesCompiler"):
            load_renderer("rendercache.renderers:flatten_properties")

    def test_abstract_interface(self):
        with pytest.raises(TypeError):
            RenderedArchivesCompiler()
