"""ChickSex-AI Gradio GUI

One page with a tab per entry point and the shared prediction log underneath:
- Analyze: upload an egg photo, stream the analysis
- Live Scan: webcam snapshot, alignment check, structured frame analysis
- Batch: CSV upload, paced sequential predictions, results download
- Simulator: slider-driven features and simulated classifier output
- Contribute: labelled image submission
- Research: deep reasoning, video concept, web, maps and image generation

All handlers are async so streamed output reaches the browser as it arrives.
"""

from __future__ import annotations

import asyncio
import logging
import tempfile
from pathlib import Path
from typing import Optional

import gradio as gr

from chicksex_ai import __version__
from chicksex_ai.analyzer import ImageAnalyzer, LiveScanSession
from chicksex_ai.batch import (
    RESULTS_FILENAME,
    SAMPLE_FILENAME,
    BatchConfig,
    BatchRunner,
    parse_measurements_csv,
    results_to_csv,
    sample_csv,
)
from chicksex_ai.camera import StillFrameSource, encode_jpeg, image_part_from
from chicksex_ai.config import APP_NAME, AUTO_CAPTURE_THRESHOLD, BATCH_CALL_DELAY
from chicksex_ai.contribute import THANK_YOU_MESSAGE, ContributionQueue
from chicksex_ai.errors import BusyError, ChickSexError, GeolocationError
from chicksex_ai.locate import FixedLocator, NoLocator, PlaceLocator
from chicksex_ai.models import Measurement
from chicksex_ai.morphometrics import compute_features, describe_features
from chicksex_ai.predict import simulate_model_prediction
from chicksex_ai.prediction_log import LOG_CSV_HEADER, PredictionLog
from chicksex_ai.provider.base import PredictionProvider, create_provider
from chicksex_ai.research import ResearchMode, ResearchOrchestrator

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("chicksex-gradio")

RESULT_HEADERS = ["id", "mass", "long_axis", "short_axis", "predicted_sex"]
CLEAR_LOG_PROMPT = "Are you sure you want to clear the entire batch log? This cannot be undone."
CONFIRM_CLEAR_JS = f"() => confirm({CLEAR_LOG_PROMPT!r})"


class AppSession:
    """Everything that lives for one GUI session."""

    def __init__(self, provider: PredictionProvider):
        self.provider = provider
        self.log = PredictionLog()
        self.contributions = ContributionQueue()
        self.research = ResearchOrchestrator(provider)
        self.batch_runner: Optional[BatchRunner] = None
        self.export_dir = Path(tempfile.mkdtemp(prefix="chicksex-"))

    def log_rows(self) -> list[list[str]]:
        return self.log.to_rows()

    def clear_log(self, confirmed: bool) -> list[list[str]]:
        """Clear the prediction log only when the user confirmed it."""
        if confirmed:
            self.log.clear()
            logger.info("Prediction log cleared")
        return self.log_rows()

    def write_export(self, name: str, content: str) -> str:
        path = self.export_dir / name
        path.write_text(content, encoding="utf-8")
        return str(path)


def _error(message: str) -> str:
    return f"❌ {message}" if message else ""


def build_interface(provider: Optional[PredictionProvider] = None):
    """Build the Gradio interface around one provider."""
    session = AppSession(provider or create_provider("gemini"))

    # Analyze

    def on_batch_entry(batch_number):
        return gr.update(interactive=bool((batch_number or "").strip()))

    async def on_analyze(batch_number, image):
        analyzer = ImageAnalyzer(session.provider, session.log.appender)
        try:
            stream = analyzer.analyze(batch_number or "", image_part_from(image))
            async for _ in stream:
                yield analyzer.analysis_text, "", session.log_rows(), gr.update(), gr.update()
        except ChickSexError as e:
            yield "", _error(str(e)), session.log_rows(), gr.update(), gr.update()
            return

        if analyzer.error:
            yield analyzer.analysis_text, _error(analyzer.error), session.log_rows(), gr.update(), gr.update()
            return
        summary = f"{analyzer.analysis_text}\n\n**Prediction: {analyzer.prediction.display}**"
        yield summary, "", session.log_rows(), "", None

    # Live scan

    def _live_session(batch_number: str, frame, gated: bool) -> LiveScanSession:
        return LiveScanSession(
            session.provider,
            session.log.appender,
            StillFrameSource(encode_jpeg(frame) if frame is not None else b""),
            batch_number=batch_number or "",
            gate_capture=gated,
        )

    def _alignment_text(score) -> str:
        if score is None:
            return "Alignment unavailable"
        marker = {"good": "🟢", "fair": "🟡", "poor": "🔴"}[score.band]
        return f"{marker} Alignment confidence: {score.confidence:.0%}"

    async def on_check_alignment(batch_number, frame):
        scan = _live_session(batch_number, frame, gated=True)
        try:
            await scan.start()
            score = await scan.check_alignment()
        except ChickSexError as e:
            return "", _error(scan.error or str(e))
        finally:
            scan.stop()
        return _alignment_text(score), ""

    async def on_capture(batch_number, frame, gated):
        scan = _live_session(batch_number, frame, gated)
        try:
            await scan.start()
            score = await scan.check_alignment() if gated else None
            result = await scan.capture_and_analyze()
        except ChickSexError as e:
            scan_error = scan.error
            scan.stop()
            return "", "", _error(scan_error or str(e)), session.log_rows()
        error = scan.error
        scan.stop()

        if result is None:
            return _alignment_text(score) if gated else "", "", _error(error or "No result"), session.log_rows()
        analysis = f"**Prediction: {result.prediction.display}**\n\n{result.analysis_text}"
        return _alignment_text(score) if gated else "", analysis, "", session.log_rows()

    # Batch

    def on_csv_upload(file_path):
        if not file_path:
            return [], "", gr.update(interactive=False)
        try:
            rows = parse_measurements_csv(Path(file_path).read_text(encoding="utf-8"))
        except ChickSexError as e:
            return [], _error(str(e)), gr.update(interactive=False)
        preview = [[m.id or "", m.mass, m.long_axis, m.short_axis, ""] for m in rows]
        return preview, f"✓ Loaded {len(rows)} eggs", gr.update(interactive=True)

    async def on_run_batch(file_path, delay):
        if not file_path:
            yield [], _error("No data to process. Please upload a valid CSV file."), gr.update(visible=False)
            return
        try:
            rows = parse_measurements_csv(Path(file_path).read_text(encoding="utf-8"))
        except ChickSexError as e:
            yield [], _error(str(e)), gr.update(visible=False)
            return

        progress = {"results": [], "index": -1}

        def update(results, index, total):
            progress["results"] = results
            progress["index"] = index

        runner = BatchRunner(session.provider, BatchConfig(delay=float(delay)), on_progress=update)
        session.batch_runner = runner
        task = asyncio.create_task(runner.run(rows))

        shown = -1
        while not task.done():
            if progress["index"] != shown:
                shown = progress["index"]
                yield _result_rows(progress["results"]), f"Processing egg {min(shown + 2, len(rows))} of {len(rows)}...", gr.update(visible=False)
            await asyncio.sleep(0.2)

        results = task.result()
        session.batch_runner = None
        path = session.write_export(RESULTS_FILENAME, results_to_csv(results))
        status = f"✓ Processed {len(results)} of {len(rows)} eggs"
        if runner.cancelled:
            status += " (cancelled)"
        yield _result_rows(results), status, gr.update(value=path, visible=bool(results))

    def on_cancel_batch():
        if session.batch_runner is not None:
            session.batch_runner.cancel()
            return "Cancelling after the current egg..."
        return "No batch is running"

    # Simulator

    def on_features(mass, long_axis, short_axis):
        measurement = Measurement(mass=float(mass), long_axis=float(long_axis), short_axis=float(short_axis))
        features = compute_features(measurement)
        if features is None:
            return _error("Invalid measurements. Long axis and mass cannot be zero.")
        return "\n".join(describe_features(measurement, features))

    async def on_simulate(mass, long_axis, short_axis):
        measurement = Measurement(mass=float(mass), long_axis=float(long_axis), short_axis=float(short_axis))
        try:
            result = await simulate_model_prediction(session.provider, measurement)
        except ChickSexError as e:
            logger.exception("Simulator error")
            return _error(str(e))
        return f"### Predicted: {result.prediction.display}\nConfidence: {result.confidence:.0%}"

    # Contribute

    def on_contribute(image, label):
        try:
            jpeg = encode_jpeg(image) if image is not None else None
            session.contributions.submit(f"contribution-{len(session.contributions) + 1}.jpg", jpeg, label)
        except ChickSexError as e:
            return _error(str(e)), gr.update(), gr.update()
        counts = session.contributions.counts()
        return f"✓ {THANK_YOU_MESSAGE} (male: {counts['male']}, female: {counts['female']})", None, None

    # Research

    def on_mode_change(mode):
        try:
            session.research.select_mode(mode)
        except BusyError as e:
            return gr.update(), gr.update(), _error(str(e))
        return "", None, ""

    async def on_research(mode, prompt, lat, lon, place):
        if place and place.strip():
            session.research.locator = PlaceLocator(place)
        elif lat is not None and lon is not None:
            try:
                session.research.locator = FixedLocator(float(lat), float(lon))
            except GeolocationError as e:
                yield "", None, _error(str(e))
                return
        else:
            session.research.locator = NoLocator()

        try:
            async for state in session.research.stream(mode, prompt):
                yield state.text, None, ""
        except ChickSexError as e:
            yield "", None, _error(str(e))
            return

        state = session.research.state
        if state.error:
            yield "", None, _error(state.error)
            return
        image_path = None
        if state.image is not None:
            image_path = str(session.export_dir / "generated.jpg")
            Path(image_path).write_bytes(state.image)
        yield state.to_markdown(), image_path, ""

    # Log

    def on_clear_log(confirmed):
        return session.clear_log(bool(confirmed))

    def on_export_log():
        return session.write_export("batch_log.csv", session.log.to_csv())

    def on_sample_csv():
        return session.write_export(SAMPLE_FILENAME, sample_csv())

    with gr.Blocks(theme=gr.themes.Soft(), title=APP_NAME) as app:
        gr.Markdown(
            f"""
            # 🥚 {APP_NAME}
            ### Chick sex prediction from egg morphology

            Predictions are generated by a hosted AI model and are not a substitute for in-ovo sexing.
            """
        )

        with gr.Tabs():
            with gr.Tab("Analyze"):
                with gr.Row():
                    with gr.Column(scale=1):
                        analyze_batch = gr.Textbox(label="Step 1: Batch Number", placeholder="e.g., B-2024-001")
                        analyze_image = gr.Image(label="Step 2: Egg Photo", type="pil", sources=["upload"])
                        analyze_btn = gr.Button("🔍 Analyze Egg", variant="primary", interactive=False)
                    with gr.Column(scale=1):
                        analyze_output = gr.Markdown(label="Analysis")
                        analyze_error = gr.Markdown()

            with gr.Tab("Live Scan"):
                with gr.Row():
                    with gr.Column(scale=1):
                        live_batch = gr.Textbox(label="Batch Number", placeholder="e.g., B-2024-001")
                        live_frame = gr.Image(label="Camera", type="pil", sources=["webcam"])
                        live_gated = gr.Checkbox(
                            value=True,
                            label="Require alignment before capture",
                            info=f"Capture only when alignment confidence is at least {AUTO_CAPTURE_THRESHOLD:.0%}",
                        )
                        with gr.Row():
                            align_btn = gr.Button("🎯 Check Alignment", interactive=False)
                            capture_btn = gr.Button("📸 Capture & Analyze", variant="primary", interactive=False)
                    with gr.Column(scale=1):
                        live_alignment = gr.Markdown()
                        live_output = gr.Markdown()
                        live_error = gr.Markdown()

            with gr.Tab("Batch"):
                with gr.Row():
                    with gr.Column(scale=1):
                        csv_upload = gr.File(label="Measurements CSV", file_types=[".csv"], type="filepath")
                        sample_btn = gr.DownloadButton("📄 Download Sample CSV")
                        delay_slider = gr.Slider(
                            minimum=0, maximum=10, value=BATCH_CALL_DELAY, step=0.1,
                            label="Delay between calls (s)", info="Keeps requests under the API rate limit",
                        )
                        with gr.Row():
                            run_batch_btn = gr.Button("🚀 Process Batch", variant="primary", interactive=False)
                            cancel_batch_btn = gr.Button("⏹ Cancel")
                        batch_status = gr.Markdown()
                    with gr.Column(scale=2):
                        batch_table = gr.Dataframe(headers=RESULT_HEADERS, interactive=False)
                        results_download = gr.DownloadButton("💾 Download Results", visible=False)

            with gr.Tab("Simulator"):
                with gr.Row():
                    with gr.Column(scale=1):
                        sim_mass = gr.Slider(40, 75, value=58, step=0.1, label="Mass (g)")
                        sim_long = gr.Slider(45, 70, value=57, step=0.1, label="Long Axis (mm)")
                        sim_short = gr.Slider(35, 50, value=43, step=0.1, label="Short Axis (mm)")
                        simulate_btn = gr.Button("✨ Predict", variant="primary")
                    with gr.Column(scale=1):
                        sim_features = gr.Textbox(
                            label="Calculated Metrics", lines=8, interactive=False,
                            value=on_features(58, 57, 43),
                        )
                        sim_result = gr.Markdown()

            with gr.Tab("Contribute"):
                with gr.Row():
                    with gr.Column(scale=1):
                        contrib_image = gr.Image(label="Egg Photo", type="pil", sources=["upload"])
                        contrib_label = gr.Radio(choices=["male", "female"], label="Hatched chick's sex")
                        contrib_btn = gr.Button("📤 Submit Contribution", variant="primary")
                    with gr.Column(scale=1):
                        contrib_status = gr.Markdown()

            with gr.Tab("Research"):
                research_mode = gr.Radio(
                    choices=[(m.label, m.value) for m in ResearchMode],
                    value=ResearchMode.THINK.value,
                    label="Tool",
                )
                research_prompt = gr.Textbox(label="Prompt", lines=4)
                with gr.Accordion("📍 Location (Find Places)", open=False):
                    with gr.Row():
                        research_lat = gr.Number(label="Latitude", value=None)
                        research_lon = gr.Number(label="Longitude", value=None)
                    research_place = gr.Textbox(label="Or place name", placeholder="e.g., Utrecht")
                research_btn = gr.Button("Submit", variant="primary")
                research_output = gr.Markdown()
                research_image = gr.Image(label="Generated Image", type="filepath", interactive=False)
                research_error = gr.Markdown()

        gr.Markdown("### 📋 Prediction Log")
        log_table = gr.Dataframe(headers=LOG_CSV_HEADER, interactive=False, value=[])
        with gr.Row():
            clear_log_btn = gr.Button("🗑 Clear Log")
            clear_log_confirmed = gr.Checkbox(value=False, visible=False)
            export_log_btn = gr.DownloadButton("💾 Export Log CSV")

        analyze_batch.change(fn=on_batch_entry, inputs=[analyze_batch], outputs=[analyze_btn])
        live_batch.change(
            fn=lambda value: (on_batch_entry(value), on_batch_entry(value)),
            inputs=[live_batch],
            outputs=[align_btn, capture_btn],
        )
        analyze_btn.click(
            fn=on_analyze,
            inputs=[analyze_batch, analyze_image],
            outputs=[analyze_output, analyze_error, log_table, analyze_batch, analyze_image],
        )
        align_btn.click(
            fn=on_check_alignment,
            inputs=[live_batch, live_frame],
            outputs=[live_alignment, live_error],
        )
        capture_btn.click(
            fn=on_capture,
            inputs=[live_batch, live_frame, live_gated],
            outputs=[live_alignment, live_output, live_error, log_table],
        )
        csv_upload.change(
            fn=on_csv_upload,
            inputs=[csv_upload],
            outputs=[batch_table, batch_status, run_batch_btn],
        )
        sample_btn.click(fn=on_sample_csv, outputs=[sample_btn])
        run_batch_btn.click(
            fn=on_run_batch,
            inputs=[csv_upload, delay_slider],
            outputs=[batch_table, batch_status, results_download],
        )
        cancel_batch_btn.click(fn=on_cancel_batch, outputs=[batch_status])
        for slider in (sim_mass, sim_long, sim_short):
            slider.change(fn=on_features, inputs=[sim_mass, sim_long, sim_short], outputs=[sim_features])
        simulate_btn.click(fn=on_simulate, inputs=[sim_mass, sim_long, sim_short], outputs=[sim_result])
        contrib_btn.click(
            fn=on_contribute,
            inputs=[contrib_image, contrib_label],
            outputs=[contrib_status, contrib_image, contrib_label],
        )
        research_mode.change(
            fn=on_mode_change,
            inputs=[research_mode],
            outputs=[research_output, research_image, research_error],
        )
        research_btn.click(
            fn=on_research,
            inputs=[research_mode, research_prompt, research_lat, research_lon, research_place],
            outputs=[research_output, research_image, research_error],
        )
        clear_log_btn.click(
            fn=on_clear_log,
            inputs=[clear_log_confirmed],
            outputs=[log_table],
            js=CONFIRM_CLEAR_JS,
        )
        export_log_btn.click(fn=on_export_log, outputs=[export_log_btn])

        gr.Markdown(
            f"""
            ---
            **{APP_NAME}** v{__version__}
            """
        )

    return app


def _result_rows(results) -> list[list]:
    rows = []
    for r in results:
        m = r.measurement
        rows.append([m.id or "", m.mass, m.long_axis, m.short_axis, r.predicted_sex.value])
    return rows


def launch(provider: Optional[PredictionProvider] = None, port: int = 7860, share: bool = False):
    """Launch the Gradio GUI."""
    logger.info("Starting %s Gradio GUI...", APP_NAME)

    app = build_interface(provider)

    app.queue()

    app.launch(
        server_name="0.0.0.0",
        server_port=port,
        share=share,
        show_error=True,
        inbrowser=True,
    )


if __name__ == "__main__":
    launch()
