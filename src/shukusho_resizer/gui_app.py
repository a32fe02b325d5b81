"""Single-image shrinker GUI.

Drop, paste or pick one image, drag the width slider and release to resize,
then download or copy the result as PNG or JPEG.

Usage:
    python -m shukusho_resizer.gui_app
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime
from pathlib import Path
from tkinter import filedialog, messagebox
from typing import Any, Dict, List, Optional

import customtkinter
from PIL import Image, ImageTk

from shukusho_resizer.controller import InteractionController, ResizeResult
from shukusho_resizer.decode_session import POLL_INTERVAL_MS
from shukusho_resizer.encoder import OutputFormat
from shukusho_resizer.errors import InvalidTargetSize
from shukusho_resizer.fit_renderer import PREVIEW_BOX_SIZE, render_preview
from shukusho_resizer.image_source import SELECTABLE_INPUT_EXTENSIONS, DropPayload, FileBytes, SourceImage
from shukusho_resizer.input_subscriptions import InputSubscription, InputSubscriptions
from shukusho_resizer.runtime_logging import (
    LOG_FILENAME,
    RUN_SUMMARY_FILENAME,
    get_default_log_dir,
    setup_logging,
    write_run_summary,
)
from shukusho_resizer.settings_store import SettingsStore
from shukusho_resizer.ui_text_presenter import (
    HEADER_TEXT,
    WINDOW_TITLE,
    build_empty_state_text,
    build_result_info_text,
    build_source_info_text,
)

try:
    from tkinterdnd2 import DND_FILES, TkinterDnD

    TKDND_AVAILABLE = True
except ImportError:
    DND_FILES = None
    TkinterDnD = None
    TKDND_AVAILABLE = False

logger = logging.getLogger(__name__)

ACCENT = "#f87171"
ACCENT_HOVER = "#ef4444"
ACCENT_SOFT = "#fef2f2"
FORMAT_LABELS = {"PNG": OutputFormat.PNG, "JPEG": OutputFormat.JPEG}
COPY_TOKEN = "copy"


def _shortcut_modifier() -> str:
    return "Command" if sys.platform == "darwin" else "Control"


class ShukushoApp(customtkinter.CTk):
    def __init__(self, settings_store: Optional[SettingsStore] = None) -> None:
        super().__init__()
        self._settings_store = settings_store or SettingsStore()
        self.settings = self._settings_store.load()
        self._log_dir = get_default_log_dir()
        setup_logging(console_level="WARNING", file_level="INFO", log_file=self._log_dir / LOG_FILENAME)
        self._run_summary: Dict[str, Any] = {
            "started_at": datetime.now().isoformat(timespec="seconds"),
            "loaded": 0,
            "resized": 0,
            "exported": 0,
            "copied": 0,
            "errors": 0,
        }

        customtkinter.set_appearance_mode(str(self.settings.get("appearance_mode", "system")))
        self.title(WINDOW_TITLE)
        self.geometry(str(self.settings.get("window_geometry", "720x760")))
        self.minsize(560, 680)

        self._photo: Optional[ImageTk.PhotoImage] = None
        self._poll_after_id: Optional[str] = None
        self._drag_drop_enabled = False

        self._build_layout()

        try:
            output_format = OutputFormat.parse(str(self.settings.get("output_format", "png")))
        except ValueError:
            logger.warning("Unknown output_format in settings: %r", self.settings.get("output_format"))
            output_format = OutputFormat.PNG
        self.controller = InteractionController(view=self, output_format=output_format)
        self.format_var.set(self.controller.output_format.name)

        self._subscriptions = InputSubscriptions(self._input_subscriptions())
        self._subscriptions.begin()
        self._drag_drop_enabled = any(name.startswith("drop:") for name in self._subscriptions.bound_names)
        self.empty_label.configure(text=build_empty_state_text(drag_drop_enabled=self._drag_drop_enabled, paste_shortcut=f"{_shortcut_modifier()}+V"))

        self.protocol("WM_DELETE_WINDOW", self._on_close)

    # ---- レイアウト ----
    def _build_layout(self) -> None:
        self.grid_columnconfigure(0, weight=1)
        self.grid_rowconfigure(1, weight=1)

        header = customtkinter.CTkFrame(self, height=64, fg_color=ACCENT_SOFT, corner_radius=0)
        header.grid(row=0, column=0, sticky="ew")
        customtkinter.CTkLabel(header, text=HEADER_TEXT, font=("", 28, "bold"), text_color=ACCENT).pack(pady=12)

        self.drop_zone = customtkinter.CTkFrame(self, fg_color="transparent", border_width=1, border_color=ACCENT)
        self.drop_zone.grid(row=1, column=0, sticky="nsew", padx=16, pady=12)
        self.drop_zone.grid_rowconfigure(0, weight=1)
        self.drop_zone.grid_columnconfigure(0, weight=1)

        box_width, box_height = PREVIEW_BOX_SIZE
        self.canvas = customtkinter.CTkCanvas(self.drop_zone, width=box_width, height=box_height, highlightthickness=0, bg="#ffffff")
        self.canvas.grid(row=0, column=0)
        self.empty_label = customtkinter.CTkLabel(self.drop_zone, text="", text_color=ACCENT)
        self.empty_label.place(relx=0.5, rely=0.5, anchor="center")

        footer = customtkinter.CTkFrame(self, fg_color=ACCENT_SOFT, corner_radius=0)
        footer.grid(row=2, column=0, sticky="ew")
        footer.grid_columnconfigure(0, weight=1)

        self.source_info_var = customtkinter.StringVar(value="")
        customtkinter.CTkLabel(footer, textvariable=self.source_info_var, text_color=ACCENT).grid(row=0, column=0, pady=(8, 0))

        self.width_slider = customtkinter.CTkSlider(
            footer,
            from_=1,
            to=2,
            command=self._on_slider_drag,
            button_color=ACCENT,
            button_hover_color=ACCENT_HOVER,
            progress_color=ACCENT,
            state="disabled",
        )
        self.width_slider.grid(row=1, column=0, sticky="ew", padx=48, pady=4)
        self.width_slider.bind("<ButtonRelease-1>", self._on_slider_release)

        self.result_info_var = customtkinter.StringVar(value="")
        customtkinter.CTkLabel(footer, textvariable=self.result_info_var, text_color=ACCENT).grid(row=2, column=0)

        actions = customtkinter.CTkFrame(footer, fg_color="transparent")
        actions.grid(row=3, column=0, pady=(8, 12))
        customtkinter.CTkButton(actions, text="画像を選択", command=self._select_file, width=110).pack(side="left", padx=4)
        customtkinter.CTkButton(actions, text="貼り付け", command=self._paste, width=90).pack(side="left", padx=4)
        self.format_var = customtkinter.StringVar(value="PNG")
        customtkinter.CTkSegmentedButton(
            actions,
            values=list(FORMAT_LABELS),
            variable=self.format_var,
            command=self._on_format_change,
        ).pack(side="left", padx=8)
        self.download_button = customtkinter.CTkButton(
            actions, text="ダウンロード", command=self._download, fg_color=ACCENT, hover_color=ACCENT_HOVER, state="disabled", width=120
        )
        self.download_button.pack(side="left", padx=4)
        self.copy_button = customtkinter.CTkButton(actions, text="コピー", command=self._copy, state="disabled", width=90)
        self.copy_button.pack(side="left", padx=4)

        self.status_var = customtkinter.StringVar(value="")
        customtkinter.CTkLabel(self, textvariable=self.status_var, anchor="w").grid(row=3, column=0, sticky="ew", padx=12, pady=(0, 4))

    def _input_subscriptions(self) -> List[InputSubscription]:
        modifier = _shortcut_modifier()
        subscriptions = [
            self._key_subscription(f"<{modifier}-c>", self._on_copy_shortcut),
            self._key_subscription(f"<{modifier}-v>", self._on_paste_shortcut),
            self._key_subscription("<<Paste>>", self._on_paste_shortcut),
        ]
        if TKDND_AVAILABLE and TkinterDnD is not None:
            try:
                TkinterDnD._require(self)
            except Exception as exc:
                logger.warning("Drag and drop initialization failed: %s", exc)
            else:
                subscriptions.extend(self._drop_subscription(widget) for widget in (self.drop_zone, self.canvas))
        else:
            logger.info("Drag and drop disabled: tkinterdnd2 unavailable")
        return subscriptions

    def _key_subscription(self, sequence: str, handler: Any) -> InputSubscription:
        return InputSubscription(
            name=f"key:{sequence}",
            bind=lambda: self.bind(sequence, handler, add="+"),
            unbind=lambda funcid: self.unbind(sequence, funcid),
        )

    def _drop_subscription(self, widget: Any) -> InputSubscription:
        def bind() -> None:
            widget.drop_target_register(DND_FILES)
            widget.dnd_bind("<<DropEnter>>", self._on_drop_enter)
            widget.dnd_bind("<<DropPosition>>", lambda _event: COPY_TOKEN)
            widget.dnd_bind("<<DropLeave>>", self._on_drop_leave)
            widget.dnd_bind("<<Drop>>", self._on_drop)

        return InputSubscription(name=f"drop:{widget}", bind=bind, unbind=lambda _token: widget.drop_target_unregister())

    # ---- ControllerView ----
    def show_preview(self, buffer: Optional[Image.Image]) -> None:
        self.canvas.delete("all")
        if buffer is None:
            self._photo = None
            self.empty_label.place(relx=0.5, rely=0.5, anchor="center")
            return
        self.empty_label.place_forget()
        box_width, box_height = PREVIEW_BOX_SIZE
        if buffer.size != PREVIEW_BOX_SIZE:
            buffer = render_preview(buffer, box_width, box_height)
        self._photo = ImageTk.PhotoImage(buffer)
        self.canvas.create_image(box_width // 2, box_height // 2, image=self._photo, anchor="center")

    def show_source_info(self, source: Optional[SourceImage]) -> None:
        if source is None:
            self.source_info_var.set("")
            self.width_slider.configure(state="disabled")
            return
        self._run_summary["loaded"] += 1
        self.source_info_var.set(
            build_source_info_text(byte_size=source.original_byte_size, width=source.natural_width, height=source.natural_height)
        )
        if source.natural_width > 1:
            self.width_slider.configure(from_=1, to=source.natural_width, number_of_steps=source.natural_width - 1, state="normal")
            self.width_slider.set(source.natural_width)
        else:
            self.width_slider.configure(state="disabled")
        self.download_button.configure(state="normal")
        self.copy_button.configure(state="normal")

    def show_target(self, width: int, height: int, result: Optional[ResizeResult]) -> None:
        estimated = result.encoded_byte_size_estimate if result is not None else None
        self.result_info_var.set(build_result_info_text(estimated_byte_size=estimated, width=width, height=height))

    def show_message(self, text: str, *, level: str = "info") -> None:
        self.status_var.set(text)
        if level == "error":
            self._run_summary["errors"] += 1

    # ---- 入力ハンドラ ----
    def _select_file(self) -> None:
        initial_dir = str(self.settings.get("last_input_dir", ""))
        patterns = " ".join(f"*{ext}" for ext in SELECTABLE_INPUT_EXTENSIONS)
        selected = filedialog.askopenfilename(
            title="画像を選択",
            initialdir=initial_dir or None,
            filetypes=[("画像", patterns), ("すべて", "*.*")],
        )
        if not selected:
            return
        path = Path(selected)
        self.settings["last_input_dir"] = str(path.parent)
        try:
            payload = FileBytes.from_path(path)
        except OSError as exc:
            messagebox.showerror("読み込みエラー", f"ファイルを読み込めませんでした: {exc}")
            return
        self._start_acquire(self.controller.acquire(payload))

    def _paste(self) -> None:
        self._start_acquire(self.controller.paste_from_clipboard())

    def _on_paste_shortcut(self, _event: Any) -> str:
        self._paste()
        return "break"

    def _on_copy_shortcut(self, _event: Any) -> str:
        # 既定のコピー動作は抑止する
        self._copy()
        return "break"

    def _on_drop_enter(self, _event: Any) -> str:
        self.drop_zone.configure(fg_color=ACCENT_SOFT)
        return COPY_TOKEN

    def _on_drop_leave(self, _event: Any) -> None:
        self.drop_zone.configure(fg_color="transparent")

    def _on_drop(self, event: Any) -> str:
        self._on_drop_leave(event)
        payload = DropPayload(raw_data=str(getattr(event, "data", "")), splitlist=self.tk.splitlist)
        self._start_acquire(self.controller.acquire(payload))
        return COPY_TOKEN

    def _start_acquire(self, request_id: Optional[int]) -> None:
        if request_id is None:
            return
        self.status_var.set("画像読み込み中…")
        if self._poll_after_id is None:
            self._poll_after_id = self.after(POLL_INTERVAL_MS, self._poll_decodes)

    def _poll_decodes(self) -> None:
        self._poll_after_id = None
        if self.controller.pump():
            self.status_var.set("")
        if self.controller.decode_pending:
            self._poll_after_id = self.after(POLL_INTERVAL_MS, self._poll_decodes)

    # ---- スライダー / 形式 ----
    def _slider_width(self) -> Optional[int]:
        slider_range = self.controller.slider_range()
        if slider_range is None:
            return None
        low, high = slider_range
        return max(low, min(high, int(round(self.width_slider.get()))))

    def _on_slider_drag(self, _value: float) -> None:
        width = self._slider_width()
        if width is None:
            return
        try:
            self.controller.set_target_width(width)
        except InvalidTargetSize:
            logger.exception("slider produced an out-of-range width: %s", width)

    def _on_slider_release(self, _event: Any) -> None:
        self._on_slider_drag(self.width_slider.get())
        if self.controller.commit() is not None:
            self._run_summary["resized"] += 1

    def _on_format_change(self, label: str) -> None:
        output_format = FORMAT_LABELS.get(label, OutputFormat.PNG)
        self.controller.set_output_format(output_format)
        self.settings["output_format"] = output_format.value

    # ---- 出力 ----
    def _download(self) -> None:
        suggested = self.controller.suggested_export_name()
        if suggested is None:
            return
        output_format = self.controller.output_format
        selected = filedialog.asksaveasfilename(
            title="保存先を選択",
            initialdir=str(self.settings.get("last_output_dir", "")) or None,
            initialfile=suggested,
            defaultextension=f".{output_format.extension}",
            filetypes=[(output_format.name, f"*.{output_format.extension}")],
        )
        if not selected:
            return
        saved = self.controller.export_to(Path(selected))
        if saved is not None:
            self.settings["last_output_dir"] = str(saved.parent)
            self._run_summary["exported"] += 1

    def _copy(self) -> None:
        if self.controller.copy_to_clipboard():
            self._run_summary["copied"] += 1

    # ---- 終了 ----
    def _on_close(self) -> None:
        if self._poll_after_id is not None:
            self.after_cancel(self._poll_after_id)
            self._poll_after_id = None
        self._subscriptions.close()
        self.controller.close()

        self.settings["window_geometry"] = self.geometry()
        try:
            self._settings_store.save(self.settings)
        except OSError:
            logger.exception("Failed to save settings")

        self._run_summary["finished_at"] = datetime.now().isoformat(timespec="seconds")
        try:
            write_run_summary(self._log_dir / RUN_SUMMARY_FILENAME, self._run_summary)
        except OSError:
            logger.exception("Failed to write run summary")
        self.destroy()


def main() -> None:
    app = ShukushoApp()
    app.mainloop()


if __name__ == "__main__":
    main()
