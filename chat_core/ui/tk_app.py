import asyncio
import threading
import tkinter as tk
from tkinter import scrolledtext

from chat_core.api.service import get_default_session
from chat_core.domain.exceptions import BusyError
from chat_core.infrastructure.logging.logger import logger
from chat_core.ui.render import send_enabled, view_rows


class App:
    def __init__(self, root, session=None):
        self.root = root
        self.root.title("Chat Console")
        self.session = session or get_default_session()
        # 会话在后台线程的事件循环中运行，Tk 主线程只负责渲染
        self.loop = asyncio.new_event_loop()
        threading.Thread(target=self.loop.run_forever, daemon=True).start()

        top = tk.Frame(root)
        top.pack(fill=tk.X)
        tk.Button(top, text="New Chat", command=self.on_reset).pack(side=tk.LEFT)
        tk.Button(top, text="Stop", command=self.on_cancel).pack(side=tk.LEFT)
        self.chat = scrolledtext.ScrolledText(root, width=80, height=24, wrap=tk.WORD)
        self.chat.pack(fill=tk.BOTH, expand=True)
        self.chat.tag_config("user", foreground="#1a73e8")
        self.chat.tag_config("assistant", foreground="#34a853")
        self.chat.tag_config("error", foreground="#d93025")
        self.chat.tag_config("pending", foreground="#5f6368")
        self.chat.tag_config("placeholder", foreground="#5f6368", justify=tk.CENTER)
        bottom = tk.Frame(root)
        bottom.pack(fill=tk.X)
        self.entry = tk.Entry(bottom)
        self.entry.pack(side=tk.LEFT, fill=tk.X, expand=True)
        self.entry.bind("<Return>", self.on_send_event)
        self.send_btn = tk.Button(bottom, text="Send", command=self.on_send)
        self.send_btn.pack(side=tk.LEFT)
        tk.Label(
            root,
            text="The assistant may produce inaccurate information about people, places, or facts.",
            foreground="#5f6368",
        ).pack(fill=tk.X)

        self.session.subscribe(lambda snap: self.root.after(0, lambda: self.render(snap)))
        self.render(self.session.snapshot())

    def render(self, snap):
        self.chat.config(state=tk.NORMAL)
        self.chat.delete(1.0, tk.END)
        for tag, text in view_rows(snap):
            self.chat.insert(tk.END, text + "\n", tag)
        self.chat.config(state=tk.DISABLED)
        self.chat.see(tk.END)
        if snap.is_pending:
            # 已提交的文本不再留在输入框中
            self.entry.delete(0, tk.END)
        state = tk.NORMAL if send_enabled(snap) else tk.DISABLED
        self.send_btn.config(state=state)
        self.entry.config(state=state)

    def on_send(self):
        text = self.entry.get()
        if not text.strip():
            return
        future = asyncio.run_coroutine_threadsafe(self.session.submit(text), self.loop)
        future.add_done_callback(self._on_submit_done)

    def on_send_event(self, event):
        # Shift+Enter 不发送
        if event.state & 0x0001:
            return None
        self.on_send()
        return "break"

    def on_cancel(self):
        self.loop.call_soon_threadsafe(self.session.cancel)

    def on_reset(self):
        try:
            self.session.reset()
        except BusyError:
            return

    @staticmethod
    def _on_submit_done(future):
        if future.cancelled():
            return
        exc = future.exception()
        if exc is None or isinstance(exc, BusyError):
            return
        logger.error(
            "Submit raised",
            exc_info=(type(exc), exc, exc.__traceback__),
        )


def main():
    root = tk.Tk()
    App(root)
    root.mainloop()


if __name__ == "__main__":
    main()
