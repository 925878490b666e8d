import argparse
import logging
import sys
import tkinter as tk

import matplotlib
matplotlib.use("TkAgg")
from matplotlib.backends.backend_tkagg import FigureCanvasTkAgg
from matplotlib.figure import Figure

from audio_io import MicrophoneSource, PlaybackSource
from graph_render import Layout, MatplotlibSurface
from render_loop import AnalysisContext, RenderLoop, TickInputs, TickScheduler
from sample_sources import SampleSourceError
from trace_config import get_config_path, load_settings

logger = logging.getLogger(__name__)

DPI = 100
ZOOM_H_MIN = 1.0
ZOOM_H_MAX = 5.0
ZOOM_H_STEP = 0.5


# =========================
# APP
# =========================
class App:
    def __init__(self, root, settings):
        self.root = root
        self.settings = settings
        root.title("VoiceTrace")

        self.mic = None
        self.playback = None
        self.last_audio = None
        self.session_id = 0
        self.drag_x = None

        self.context = AnalysisContext(settings)
        self.layout = Layout(settings.width, settings.height)

        # ===== UI =====
        self.fig = Figure(figsize=(settings.width / DPI, settings.height / DPI), dpi=DPI)
        self.ax = self.fig.add_subplot(111)
        self.canvas = FigureCanvasTkAgg(self.fig, root)
        self.canvas.get_tk_widget().pack(fill=tk.BOTH, expand=True)
        self.surface = MatplotlibSurface(self.ax, self.layout, canvas=self.canvas)

        status_row = tk.Frame(root)
        status_row.pack(fill=tk.X)
        self.status = tk.Label(status_row, text="Tap to start recording")
        self.status.pack(side="left", padx=8)
        self.zoom_var = tk.DoubleVar(value=ZOOM_H_MIN)
        tk.Scale(status_row, label="Zoom (time)", variable=self.zoom_var,
                 from_=ZOOM_H_MIN, to=ZOOM_H_MAX, resolution=ZOOM_H_STEP,
                 orient=tk.HORIZONTAL).pack(side="right", padx=8)

        self.info = tk.Label(root, text="-")
        self.info.pack()

        self.btn = tk.Button(root, text="Start Recording [R]", command=self.on_button)
        self.btn.pack(pady=6)

        self.error = tk.Label(root, text="", fg="red")
        self.error.pack()

        # ===== Render loop =====
        self.loop = RenderLoop(self.context, None, self.surface, self.layout)
        self.scheduler = TickScheduler(
            self.loop, self.tick_inputs, root.after, root.after_cancel,
            fps=settings.fps, on_tick=self.show_result)

        # ===== Events =====
        self.canvas.mpl_connect("button_press_event", self.on_press)
        self.canvas.mpl_connect("motion_notify_event", self.on_motion)
        self.canvas.mpl_connect("button_release_event", self.on_release)
        self.canvas.mpl_connect("scroll_event", self.on_scroll)

        # ===== Keybinds =====
        root.bind_all("r", lambda e: self.on_button())
        root.bind_all("R", lambda e: self.on_button())
        root.bind_all("z", lambda e: self.reset_zoom())
        root.bind_all("Z", lambda e: self.reset_zoom())
        root.bind_all("<Escape>", lambda e: self.quit())
        root.protocol("WM_DELETE_WINDOW", self.quit)

    # =========================
    # STATE
    # =========================
    @property
    def recording(self):
        return self.mic is not None

    @property
    def playing(self):
        return self.playback is not None and not self.playback.finished

    def tick_inputs(self):
        if self.playback is not None and self.playback.finished:
            self.playback_finished()
        return TickInputs(
            active=self.recording or self.playing,
            session_id=self.session_id,
            horizontal_zoom=self.zoom_var.get(),
        )

    def update_button(self):
        if self.recording:
            label = "Stop & Play [R]"
        elif self.playing:
            label = "Stop & Record New [R]"
        elif self.last_audio is not None:
            label = "Record Again [R]"
        else:
            label = "Start Recording [R]"
        self.btn.config(text=label)

    # =========================
    # RECORD / PLAY
    # =========================
    def on_button(self):
        self.error.config(text="")
        if self.recording:
            self.stop_recording()
        else:
            # playing or idle: drop any old take and record a new one
            self.stop_playback()
            self.last_audio = None
            self.start_recording()
        self.update_button()

    def start_recording(self):
        self.stop_playback()
        mic = None
        try:
            mic = MicrophoneSource(self.settings.sample_rate, self.settings.window_size,
                                   device=self.settings.input_device)
            mic.start()
        except (SampleSourceError, OSError) as e:
            logger.exception("Could not start recording")
            if mic is not None:
                mic.close()
            self.error.config(text=f"Microphone access denied or unavailable: {e}")
            return
        self.mic = mic
        self.session_id += 1
        self.loop.source = mic
        self.status.config(text="Recording... tap to stop and play")
        self.scheduler.start()

    def stop_recording(self):
        mic, self.mic = self.mic, None
        self.loop.source = None
        audio = mic.stop()
        mic.close()
        self.last_audio = audio if audio.size else None
        if self.last_audio is None:
            self.status.config(text="Nothing recorded. Tap to record again.")
            return
        self.status.config(text="Stopping... preparing playback")
        self.start_playback(self.last_audio)

    def start_playback(self, audio):
        self.stop_playback()
        playback = PlaybackSource(audio, self.settings.sample_rate, self.settings.window_size)
        try:
            playback.start()
        except SampleSourceError:
            logger.exception("Could not start playback")
            playback.close()
            self.status.config(text="Tap to play or record again")
            return
        self.playback = playback
        self.loop.source = playback
        self.status.config(text="Playing your last recording")
        self.scheduler.start()

    def stop_playback(self):
        playback, self.playback = self.playback, None
        if playback is None:
            return
        if self.loop.source is playback:
            self.loop.source = None
        playback.close()

    def playback_finished(self):
        self.stop_playback()
        self.status.config(text="Playback finished. Tap to record again.")
        self.update_button()

    def show_result(self, result):
        note, frame = result.note, result.frame
        if note.valid:
            txt = (f"{note} ({note.cents:+.1f}c) | {frame.frequency_hz:.1f} Hz"
                   f" | level {frame.loudness:.3f}")
        else:
            txt = f"- | level {frame.loudness:.3f}"
        self.info.config(text=txt)

    # =========================
    # INTERACTION
    # =========================
    def _surface_width(self):
        return self.canvas.get_tk_widget().winfo_width() or self.settings.width

    def on_press(self, e):
        if e.button == 1:
            self.drag_x = e.x

    def on_motion(self, e):
        if self.drag_x is None or e.x is None:
            return
        dx = e.x - self.drag_x
        self.drag_x = e.x
        self.context.pan(dx, self._surface_width())

    def on_release(self, e):
        self.drag_x = None

    def on_scroll(self, e):
        # matplotlib reports scroll-up as positive step; the wheel delta
        # convention is positive for scroll-down
        self.context.zoom(-e.step)

    def reset_zoom(self):
        with self.context.lock:
            self.context.viewport.reset_zoom()

    def quit(self):
        self.scheduler.stop()
        if self.mic is not None:
            self.mic.close()
            self.mic = None
        self.stop_playback()
        self.root.quit()


# =========================
# RUN
# =========================
def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Live pitch and loudness trace")
    parser.add_argument("--config", help="settings file (default: per-user config.json)",
                        default=None)
    parser.add_argument("--log-level", default="WARNING",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--device", type=int, default=None, help="input device index")
    parser.add_argument("--fps", type=int, default=None, help="redraw rate")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = load_settings(args.config)
    logger.info("Settings file: %s", args.config or get_config_path())
    overrides = {}
    if args.device is not None:
        overrides["input_device"] = args.device
    if args.fps is not None:
        overrides["fps"] = args.fps
    if overrides:
        settings = settings.replace(**overrides)

    root = tk.Tk()
    App(root, settings)
    root.mainloop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
