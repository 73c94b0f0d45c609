"""Prompt templates and response schemas for every provider call."""

from __future__ import annotations

from chicksex_ai.models import DerivedFeatures, Measurement
from chicksex_ai.morphometrics import describe_features

IMAGE_ANALYSIS_PROMPT = (
    "Based on established scientific research on egg morphology (shape index, ovality, etc.), "
    "analyze this egg image to predict the probable sex of the chick inside. Provide a detailed "
    "analysis explaining your reasoning and conclude with a clear prediction (Male or Female)."
)

LIVE_FRAME_PROMPT = """You are an expert in poultry science and advanced computer vision. Your task is to analyze this image of a chicken egg with high precision. Follow these steps carefully:
1.  **Image Segmentation:** First, identify and isolate the primary chicken egg from the background.
2.  **Orientation Analysis & Correction:** Determine the egg's current orientation. Conceptually rotate and align the egg so that its long axis is perfectly vertical and its broader, blunter end is at the top. This standardized orientation is critical for accurate analysis.
3.  **Morphological Prediction:** *After* performing the conceptual re-orientation, conduct a detailed morphological analysis on the aligned egg shape. Evaluate its shape index, ovality, and the curvature of its narrow end.
4.  **Final Prediction:** Based on your analysis of the correctly oriented egg, provide your final prediction.
Return a JSON object containing your prediction ('Male' or 'Female') and the detailed analysis text, explaining your reasoning from the morphological features."""

ALIGNMENT_PROMPT = (
    "You are checking a live camera preview before an egg is analysed. Estimate how well a "
    "single chicken egg is framed: fully visible, in focus, reasonably centred, and filling a "
    "good part of the frame. Return a JSON object with a confidence between 0.0 and 1.0 and "
    "whether the egg is aligned well enough to analyse."
)

VIDEO_CONCEPT_TEMPLATE = (
    'You are a video analysis expert. A user has provided the title or topic of a video: "{topic}". '
    "You have not actually seen the video. Based on this topic, provide a conceptual summary of "
    "what the video likely contains, its potential themes, and the key information a viewer "
    "might take away."
)

MEASUREMENT_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "predicted_sex": {
            "type": "STRING",
            "enum": ["male", "female"],
            "description": "The predicted sex, either 'male' or 'female'.",
        },
    },
    "required": ["predicted_sex"],
}

LIVE_FRAME_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "prediction": {
            "type": "STRING",
            "enum": ["Male", "Female", "Unknown"],
            "description": "The predicted sex of the chick, either 'Male', 'Female', or 'Unknown'.",
        },
        "analysis_text": {
            "type": "STRING",
            "description": "A detailed explanation of the morphological analysis and reasoning for the prediction.",
        },
    },
    "required": ["prediction", "analysis_text"],
}

SIMULATOR_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "prediction": {
            "type": "STRING",
            "enum": ["male", "female"],
            "description": "The predicted sex, either 'male' or 'female'.",
        },
        "confidence": {
            "type": "NUMBER",
            "description": "A confidence score for the prediction, from 0.0 to 1.0.",
        },
    },
    "required": ["prediction", "confidence"],
}

ALIGNMENT_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "confidence": {
            "type": "NUMBER",
            "description": "How well the egg is framed for analysis, from 0.0 to 1.0.",
        },
        "is_aligned": {
            "type": "BOOLEAN",
            "description": "Whether the egg is positioned well enough to analyse.",
        },
    },
    "required": ["confidence", "is_aligned"],
}


def build_measurement_prompt(measurement: Measurement) -> str:
    return (
        f"Given the following egg measurements: Mass={measurement.mass}g, "
        f"Long Axis={measurement.long_axis}mm, Short Axis={measurement.short_axis}mm. "
        "Predict the sex of the chick."
    )


def build_simulator_prompt(measurement: Measurement, features: DerivedFeatures) -> str:
    lines = [
        "Simulate a RUSBoosted Trees classifier prediction for chick sex based on these egg metrics:",
        *describe_features(measurement, features),
        "",
        "Based on the typical patterns found in poultry science research where these metrics are "
        "used, output your prediction. Generally, rounder eggs (higher shape index) are associated "
        "with females.",
    ]
    return "\n".join(lines)


def build_video_prompt(topic: str) -> str:
    return VIDEO_CONCEPT_TEMPLATE.format(topic=topic)
