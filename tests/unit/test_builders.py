"""
Unit tests for the Dockerfile validator and the build context builder.
"""
import pytest

from dorch.BUILDERS.context_builder import ContextBuilder
from dorch.BUILDERS.dockerfile_validator import DockerfileValidationError, DockerfileValidator
from dorch.MODELS.container_conf import Conf
from dorch.MODELS.identity import Id


def write(path, content):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


class TestDockerfileValidator:
    """Tests for DockerfileValidator."""

    def test_valid_dockerfile(self, tmp_path):
        write(tmp_path / "app.py", "print('hi')\n")
        write(tmp_path / "Dockerfile", (
            "ARG BASE=python:3.12\n"
            "FROM ${BASE}\n"
            "COPY app.py /app/\n"
            "ADD https://example.com/file.tgz /tmp/\n"
            "COPY --from=builder /out /out\n"
            "COPY *.txt /app/\n"
            "CMD [\"python\", \"/app/app.py\"]\n"
        ))
        DockerfileValidator().validate(tmp_path)

    def test_missing_dockerfile(self, tmp_path):
        with pytest.raises(DockerfileValidationError, match="does not exist"):
            DockerfileValidator().validate(tmp_path)

    def test_empty_dockerfile(self, tmp_path):
        write(tmp_path / "Dockerfile", "# nothing here\n")
        with pytest.raises(DockerfileValidationError, match="no instructions"):
            DockerfileValidator().validate(tmp_path)

    def test_first_instruction_must_be_from(self, tmp_path):
        write(tmp_path / "Dockerfile", "RUN echo hi\nFROM busybox\n")
        with pytest.raises(DockerfileValidationError, match="first instruction must be FROM"):
            DockerfileValidator().validate(tmp_path)

    def test_unknown_instruction(self, tmp_path):
        write(tmp_path / "Dockerfile", "FROM busybox\nRUNN echo hi\n")
        with pytest.raises(DockerfileValidationError, match=":2: unknown instruction RUNN"):
            DockerfileValidator().validate(tmp_path)

    def test_missing_copy_source(self, tmp_path):
        write(tmp_path / "Dockerfile", "FROM busybox\nCOPY missing.jar /app/\n")
        with pytest.raises(DockerfileValidationError, match="missing.jar does not exist"):
            DockerfileValidator().validate(tmp_path)

    def test_copy_without_destination(self, tmp_path):
        write(tmp_path / "Dockerfile", "FROM busybox\nCOPY onlyone\n")
        with pytest.raises(DockerfileValidationError, match="requires a source and a destination"):
            DockerfileValidator().validate(tmp_path)

    def test_packaged_sources_are_accepted(self, tmp_path):
        write(tmp_path / "Dockerfile", "FROM busybox\nCOPY app.jar /app/\nADD conf/settings.yml /etc/\n")
        DockerfileValidator().validate(tmp_path, packaged=["build/libs/app.jar", "config/conf/"])

    def test_undecodable_dockerfile(self, tmp_path):
        (tmp_path / "Dockerfile").write_bytes(b"\xff\xfeFROM busybox\n")
        with pytest.raises(DockerfileValidationError, match="not valid UTF-8"):
            DockerfileValidator().validate(tmp_path)


class TestContextBuilder:
    """Tests for ContextBuilder."""

    def test_prepare_copies_source(self, tmp_path):
        src = tmp_path / "src" / "web"
        write(src / "Dockerfile", "FROM busybox\n")
        write(src / "files" / "index.html", "<h1>hi</h1>")

        context = ContextBuilder(str(tmp_path / "work")).prepare(Id("web"), src, Conf())

        assert context == tmp_path / "work" / "web"
        assert (context / "Dockerfile").read_text() == "FROM busybox\n"
        assert (context / "files" / "index.html").is_file()

    def test_prepare_replaces_stale_context(self, tmp_path):
        src = tmp_path / "src" / "web"
        write(src / "Dockerfile", "FROM busybox\n")
        write(tmp_path / "work" / "web" / "stale.txt", "old")

        context = ContextBuilder(str(tmp_path / "work")).prepare(Id("web"), src, Conf())
        assert not (context / "stale.txt").exists()

    def test_packaging_add(self, tmp_path):
        src = tmp_path / "src" / "web"
        write(src / "Dockerfile", "FROM busybox\n")
        write(tmp_path / "build" / "libs" / "app.jar", "jar")
        write(tmp_path / "config" / "settings.yml", "a: 1")
        conf = Conf(packaging={"add": ["build/libs/app.jar", "config"]})

        context = ContextBuilder(str(tmp_path / "work"), root_dir=str(tmp_path)).prepare(Id("web"), src, conf)

        assert (context / "app.jar").read_text() == "jar"
        assert (context / "config" / "settings.yml").is_file()

    def test_missing_packaging_entry(self, tmp_path):
        src = tmp_path / "src" / "web"
        write(src / "Dockerfile", "FROM busybox\n")
        conf = Conf(packaging={"add": ["nope.jar"]})

        with pytest.raises(FileNotFoundError):
            ContextBuilder(str(tmp_path / "work"), root_dir=str(tmp_path)).prepare(Id("web"), src, conf)

    def test_properties_expanded_in_dockerfile(self, tmp_path):
        src = tmp_path / "src" / "web"
        write(src / "Dockerfile", "FROM busybox:${base.version}\nARG X\nRUN echo ${X}\n")

        context = ContextBuilder(
            str(tmp_path / "work"), properties={"base.version": "1.36"}
        ).prepare(Id("web"), src, Conf())

        assert (context / "Dockerfile").read_text() == "FROM busybox:1.36\nARG X\nRUN echo ${X}\n"
