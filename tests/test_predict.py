"""
Tests for single-call prediction helpers and label normalisation.
"""

import asyncio

import pytest

from chicksex_ai.errors import InputValidationError, ProviderError, ProviderResponseError
from chicksex_ai.models import Measurement, Sex
from chicksex_ai.predict import (
    analyze_live_frame,
    check_frame_alignment,
    extract_label,
    predict_from_measurements,
    simulate_model_prediction,
)
from chicksex_ai.provider.base import DummyProvider, ImagePart


class TestExtractLabel:
    """Test label scraping from streamed analysis text."""

    def test_fragments_joined(self):
        fragments = ["The egg shows a rounder shape, predicting ", "Female", " sex."]

        assert extract_label("".join(fragments)) == Sex.FEMALE

    def test_no_label(self):
        assert extract_label("The outline is inconclusive.") == Sex.UNKNOWN
        assert extract_label("") == Sex.UNKNOWN

    def test_case_insensitive(self):
        assert extract_label("Conclusion: MALE") == Sex.MALE
        assert extract_label("likely a male chick") == Sex.MALE

    def test_female_is_not_read_as_male(self):
        assert extract_label("Prediction: female") == Sex.FEMALE

    def test_first_match_wins(self):
        assert extract_label("Male features are absent; this is Female.") == Sex.MALE

    def test_whole_words_only(self):
        assert extract_label("Males and females differ in egg shape.") == Sex.UNKNOWN


class TestSexNormalisation:
    """Test the canonical label enum."""

    @pytest.mark.parametrize("raw,expected", [
        ("Male", Sex.MALE),
        ("FEMALE", Sex.FEMALE),
        (" male ", Sex.MALE),
        ("unknown", Sex.UNKNOWN),
        ("rooster", Sex.UNKNOWN),
        (None, Sex.UNKNOWN),
    ])
    def test_from_text(self, raw, expected):
        assert Sex.from_text(raw) == expected

    def test_display(self):
        assert [s.display for s in Sex] == ["Male", "Female", "Unknown", "Error"]


class TestPredictFromMeasurements:
    """Test the structured measurement call."""

    def test_prompt_and_result(self):
        provider = DummyProvider(structured={"predicted_sex": "FEMALE"})
        m = Measurement(mass=60.5, long_axis=58.2, short_axis=43.5, id="E001")

        result = asyncio.run(predict_from_measurements(provider, m))

        assert result == Sex.FEMALE
        prompt = provider.calls[0].parts[0]
        assert "Mass=60.5g" in prompt
        assert "Long Axis=58.2mm" in prompt
        assert provider.calls[0].options["schema"]["properties"]["predicted_sex"]["enum"] == ["male", "female"]

    def test_malformed_output_propagates(self):
        provider = DummyProvider(structured=[ProviderResponseError("not json")])

        with pytest.raises(ProviderResponseError):
            asyncio.run(predict_from_measurements(provider, Measurement(58, 57, 43)))

    def test_unrecognised_label_is_unknown(self):
        provider = DummyProvider(structured=[{"predicted_sex": "maybe"}])

        assert asyncio.run(predict_from_measurements(provider, Measurement(58, 57, 43))) == Sex.UNKNOWN

    def test_transport_failure_propagates(self):
        provider = DummyProvider(structured=[ProviderError("timeout")])

        with pytest.raises(ProviderError):
            asyncio.run(predict_from_measurements(provider, Measurement(58, 57, 43)))


class TestLiveFrameCalls:
    """Test frame analysis and alignment calls."""

    def test_analyze_live_frame(self):
        provider = DummyProvider(structured={"prediction": "Male", "analysis_text": "Pointed apex."})

        result = asyncio.run(analyze_live_frame(provider, b"jpeg-bytes"))

        assert result.prediction == Sex.MALE
        assert result.analysis_text == "Pointed apex."
        image = provider.calls[0].parts[1]
        assert isinstance(image, ImagePart)
        assert image.data == b"jpeg-bytes"

    def test_missing_prediction_is_unknown(self):
        provider = DummyProvider(structured={"analysis_text": "Blurry."})

        assert asyncio.run(analyze_live_frame(provider, b"x")).prediction == Sex.UNKNOWN

    def test_alignment(self):
        provider = DummyProvider(structured={"confidence": 0.85, "is_aligned": True})

        score = asyncio.run(check_frame_alignment(provider, b"x"))

        assert score.confidence == 0.85
        assert score.aligned
        assert score.band == "good"

    @pytest.mark.parametrize("raw,expected", [(1.7, 1.0), (-0.2, 0.0), ("bad", 0.0), (None, 0.0)])
    def test_alignment_clamped(self, raw, expected):
        provider = DummyProvider(structured={"confidence": raw, "is_aligned": False})

        assert asyncio.run(check_frame_alignment(provider, b"x")).confidence == expected

    @pytest.mark.parametrize("confidence,band", [(0.81, "good"), (0.8, "fair"), (0.51, "fair"), (0.5, "poor")])
    def test_alignment_bands(self, confidence, band):
        provider = DummyProvider(structured={"confidence": confidence, "is_aligned": True})

        assert asyncio.run(check_frame_alignment(provider, b"x")).band == band


class TestSimulateModelPrediction:
    """Test the simulated classifier."""

    def test_prediction(self):
        provider = DummyProvider(structured={"prediction": "male", "confidence": 0.73})

        result = asyncio.run(simulate_model_prediction(provider, Measurement(58, 57, 43)))

        assert result.prediction == Sex.MALE
        assert result.confidence == 0.73

    def test_prompt_lists_all_metrics(self):
        provider = DummyProvider(structured={"prediction": "female", "confidence": 0.6})

        asyncio.run(simulate_model_prediction(provider, Measurement(58, 57, 43)))

        prompt = provider.calls[0].parts[0]
        assert prompt.startswith("Simulate a RUSBoosted Trees classifier")
        assert "- Shape Index: 0.7544" in prompt
        assert "- Density:" in prompt
        assert "rounder eggs (higher shape index) are associated with females" in prompt

    def test_invalid_measurements_make_no_call(self):
        provider = DummyProvider()

        with pytest.raises(InputValidationError, match="cannot be zero"):
            asyncio.run(simulate_model_prediction(provider, Measurement(mass=0, long_axis=57, short_axis=43)))
        assert provider.calls == []

    def test_malformed_falls_back(self):
        provider = DummyProvider(structured=[ProviderResponseError("bad")])

        result = asyncio.run(simulate_model_prediction(provider, Measurement(58, 57, 43)))

        assert result.prediction == Sex.FEMALE
        assert result.confidence == 0.5

    def test_confidence_clamped(self):
        provider = DummyProvider(structured={"prediction": "female", "confidence": 3})

        assert asyncio.run(simulate_model_prediction(provider, Measurement(58, 57, 43))).confidence == 1.0

    def test_provider_failure_propagates(self):
        provider = DummyProvider(structured=[ProviderError("down")])

        with pytest.raises(ProviderError):
            asyncio.run(simulate_model_prediction(provider, Measurement(58, 57, 43)))
