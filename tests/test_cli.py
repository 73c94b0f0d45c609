"""CLI tests using typer's CliRunner and the offline provider."""

from unittest.mock import patch

from PIL import Image
from typer.testing import CliRunner

from chicksex_ai import __version__
from chicksex_ai.camera import StillFrameSource
from chicksex_ai.cli import app
from chicksex_ai.errors import ProviderError
from chicksex_ai.provider.base import DummyProvider

runner = CliRunner()


def invoke(*args):
    return runner.invoke(app, ["--provider", "dummy", *args])


class TestOfflineCommands:
    def test_version(self):
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_features(self):
        result = invoke("features", "--mass", "58", "--long-axis", "57", "--short-axis", "43")

        assert result.exit_code == 0
        assert "Shape Index" in result.output
        assert "0.7544" in result.output

    def test_features_invalid(self):
        result = invoke("features", "--mass", "0", "--long-axis", "57", "--short-axis", "43")

        assert result.exit_code == 1
        assert "Invalid measurements" in result.output

    def test_sample_csv(self, tmp_path):
        target = tmp_path / "template.csv"

        result = invoke("sample-csv", "--output", str(target))

        assert result.exit_code == 0
        assert target.read_text().splitlines()[0] == "id,mass,long_axis,short_axis"


class TestProviderCommands:
    def test_batch(self, tmp_path):
        source = tmp_path / "eggs.csv"
        source.write_text("id,mass,long_axis,short_axis\nE1,60.5,58.2,43.5\nE2,55,56.9,41.8\n")
        target = tmp_path / "results.csv"

        result = invoke("batch", str(source), "--delay", "0", "--output", str(target))

        assert result.exit_code == 0
        lines = target.read_text().splitlines()
        assert lines[0] == "id,mass,long_axis,short_axis,predicted_sex"
        assert lines[2] == "E2,55,56.9,41.8,male"

    def test_batch_bad_header(self, tmp_path):
        source = tmp_path / "eggs.csv"
        source.write_text("weight,length\n1,2\n")

        result = invoke("batch", str(source), "--delay", "0")

        assert result.exit_code == 1
        assert "CSV header must contain" in result.output

    def test_simulate(self):
        result = invoke("simulate", "--mass", "58", "--long-axis", "57", "--short-axis", "43")

        assert result.exit_code == 0
        assert "Male" in result.output
        assert "90%" in result.output

    def test_analyze(self, tmp_path):
        photo = tmp_path / "egg.jpg"
        Image.new("RGB", (32, 24), (230, 210, 180)).save(photo, format="JPEG")
        log_csv = tmp_path / "log.csv"

        result = invoke("analyze", str(photo), "--batch", "B-12", "--log-csv", str(log_csv))

        assert result.exit_code == 0
        assert "Female" in result.output
        lines = log_csv.read_text().splitlines()
        assert lines[0] == "Batch Number,Prediction,Source,Timestamp"
        assert lines[1].startswith('"B-12","Female","Image",')

    def test_analyze_missing_file(self, tmp_path):
        result = invoke("analyze", str(tmp_path / "nope.jpg"), "--batch", "B-1")

        assert result.exit_code == 1

    def test_research_web(self):
        result = invoke("research", "web", "in-ovo sexing")

        assert result.exit_code == 0
        assert "Offline web results" in result.output

    def test_research_maps_without_location(self):
        result = invoke("research", "maps", "Hatcheries near me")

        assert result.exit_code == 1
        assert "No location given" in result.output

    def test_research_unknown_mode(self):
        result = invoke("research", "podcast", "anything")

        assert result.exit_code == 1
        assert "Unknown mode" in result.output

    def test_image(self, tmp_path):
        target = tmp_path / "chick.jpg"

        result = invoke("image", "A fluffy chick", "--output", str(target))

        assert result.exit_code == 0
        assert target.read_bytes().startswith(b"\xff\xd8")


class TestLiveCommand:
    """Test the webcam scan with the camera replaced by a still frame."""

    def responder(self, parts, schema):
        if "is_aligned" in schema["properties"]:
            return {"confidence": 0.95, "is_aligned": True}
        raise ProviderError("model overloaded")

    def test_auto_capture_failure_is_reported(self):
        provider = DummyProvider(structured=self.responder)

        with patch("chicksex_ai.cli.create_provider", return_value=provider), \
                patch("chicksex_ai.camera.OpenCVCamera", side_effect=lambda index: StillFrameSource(b"frame")):
            result = invoke("live", "--batch", "B-3", "--auto")

        assert result.exit_code == 1
        assert "Frame analysis failed" in result.output
