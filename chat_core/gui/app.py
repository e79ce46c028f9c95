"""NeuralChat Tk 控制台。

布局：左侧会话列表（搜索、新建、置顶、删除），右侧消息区、输入框与
发送/停止按钮，顶部是服务选择、系统提示词模板、设置与导出。

ChatState 与 ChatController 只在后台线程的 asyncio 事件循环里读写
（见 gui.loop.LoopThread）。Tk 线程把操作投递到该循环；循环线程算好
view 模块的行数据后，通过 root.after 交回 Tk 线程重绘。

运行：python -m chat_core.gui.app
"""

import tkinter as tk
from pathlib import Path
from tkinter import filedialog, messagebox, scrolledtext, simpledialog, ttk

from chat_core.client.controller import ChatController
from chat_core.client.export import EXPORT_FORMATS, export_conversation, import_conversation
from chat_core.client.state import AUTO_SERVICE, ChatState
from chat_core.client.storage import JsonFileStorage
from chat_core.client.streaming import RelayClient
from chat_core.client.view import render_conversation_list, render_messages
from chat_core.domain.exceptions import BusinessError
from chat_core.gui.loop import LoopThread
from chat_core.infrastructure.logging.logger import logger
from chat_core.prompts import list_templates
from chat_core.providers.registry import PROVIDER_REGISTRY


class App:
    def __init__(self, root):
        self.root = root
        self.root.title("NeuralChat")

        # 事件循环启动前在 Tk 线程完成加载，之后状态只归循环线程
        self.state = ChatState(JsonFileStorage())
        self.state.load()
        if self.state.current is None:
            self.state.new_conversation()
        self.controller = ChatController(
            self.state,
            RelayClient(),
            on_update=lambda idx: self.schedule_paint(),
            on_notify=self.notify_later,
        )
        self.worker = LoopThread(on_error=lambda e: self.notify_later(e.message, "error"))

        self.conv_ids = []
        self.current_id = None
        self.pending = 0

        main = tk.PanedWindow(root, orient=tk.HORIZONTAL)
        main.pack(fill=tk.BOTH, expand=True)
        left = tk.Frame(main)
        right = tk.Frame(main)
        main.add(left, minsize=260)
        main.add(right)

        tk.Label(left, text="会话").pack(anchor=tk.W)
        self.search = tk.Entry(left)
        self.search.pack(fill=tk.X)
        self.search.bind("<KeyRelease>", self.on_search)
        self.conv_list = tk.Listbox(left, height=20)
        self.conv_list.pack(fill=tk.BOTH, expand=True)
        self.conv_list.bind("<<ListboxSelect>>", self.on_select_conv)
        lf_btns = tk.Frame(left)
        lf_btns.pack(fill=tk.X)
        tk.Button(lf_btns, text="新建", command=self.create_conv).pack(side=tk.LEFT)
        tk.Button(lf_btns, text="置顶", command=self.pin_conv).pack(side=tk.LEFT)
        tk.Button(lf_btns, text="删除", command=self.delete_conv).pack(side=tk.LEFT)
        tk.Button(lf_btns, text="清空", command=self.clear_conv).pack(side=tk.LEFT)

        top = tk.Frame(right)
        top.pack(fill=tk.X)
        tk.Label(top, text="服务").pack(side=tk.LEFT)
        self.service = ttk.Combobox(top, values=[AUTO_SERVICE], state="readonly", width=12)
        self.service.set(self.state.selected_service)
        self.service.pack(side=tk.LEFT)
        self.service.bind("<<ComboboxSelected>>", self.on_select_service)
        tk.Label(top, text="模板").pack(side=tk.LEFT)
        self.template = ttk.Combobox(top, values=list_templates(), state="readonly", width=12)
        self.template.pack(side=tk.LEFT)
        self.template.bind("<<ComboboxSelected>>", self.on_select_template)
        tk.Button(top, text="系统提示词", command=self.edit_system_prompt).pack(side=tk.LEFT)
        tk.Button(top, text="设置", command=self.open_settings).pack(side=tk.LEFT)
        tk.Button(top, text="导出", command=self.export_conv).pack(side=tk.LEFT)
        tk.Button(top, text="导入", command=self.import_conv).pack(side=tk.LEFT)

        self.chat = scrolledtext.ScrolledText(right, width=80, height=24)
        self.chat.pack(fill=tk.BOTH, expand=True)
        self.chat.tag_config("user", foreground="#1a73e8")
        self.chat.tag_config("assistant", foreground="#34a853")
        self.chat.tag_config("system", foreground="#5f6368")

        rt_in = tk.Frame(right)
        rt_in.pack(fill=tk.X)
        tk.Button(rt_in, text="附件", command=self.attach_file).pack(side=tk.LEFT)
        self.entry = tk.Entry(rt_in)
        self.entry.pack(side=tk.LEFT, fill=tk.X, expand=True)
        self.entry.bind("<Return>", self.on_send_event)
        self.send_btn = tk.Button(rt_in, text="发送", command=self.on_send)
        self.send_btn.pack(side=tk.LEFT)
        self.stop_btn = tk.Button(rt_in, text="停止", command=self.on_stop, state=tk.DISABLED)
        self.stop_btn.pack(side=tk.LEFT)
        self.status = tk.Label(right, text="准备就绪", anchor=tk.W)
        self.status.pack(fill=tk.X)

        self.refresh()
        self.worker.submit(self.load_services())

    # ---- 线程间投递 ----

    def act(self, fn, *args):
        """在循环线程上修改状态，完成后重绘。"""

        self.worker.call(fn, *args, then=self.schedule_paint)

    def notify_later(self, message, level="info"):
        self.root.after(0, lambda: self.notify(message, level))

    async def load_services(self):
        services = await self.controller.refresh_services()
        self.root.after(0, lambda: self.service.config(values=services or [AUTO_SERVICE]))

    # ---- 渲染 ----

    def refresh(self):
        self.worker.call(self.schedule_paint)

    def schedule_paint(self):
        # 只在循环线程调用：读取状态生成快照，交给 Tk 线程绘制
        snapshot = {
            "rows": render_conversation_list(self.state),
            "messages": render_messages(self.state.current),
            "current_id": self.state.current_id,
            "streaming": self.state.streaming,
            "pending": len(self.state.pending_files),
        }
        self.root.after(0, lambda: self.paint(snapshot))

    def paint(self, snapshot):
        rows = snapshot["rows"]
        self.conv_ids = [r.id for r in rows]
        self.current_id = snapshot["current_id"]
        self.pending = snapshot["pending"]
        self.conv_list.delete(0, tk.END)
        for r in rows:
            suffix = f"  {r.time}" if r.time else ""
            self.conv_list.insert(tk.END, f"{r.icon} {r.title}{suffix}")
            if r.active:
                self.conv_list.itemconfig(tk.END, background="#e8f0fe")

        self.chat.delete(1.0, tk.END)
        for row in snapshot["messages"]:
            tag = f"  [{row.service_tag}]" if row.service_tag else ""
            self.chat.insert(tk.END, f"{row.author}{tag}  {row.time}\n", "system")
            for chip in row.files:
                self.chat.insert(tk.END, f"{chip.icon} {chip.name} ({chip.label} {chip.size})\n", "system")
            self.chat.insert(tk.END, f"{row.text}\n\n", row.role)
        self.chat.see(tk.END)

        streaming = snapshot["streaming"]
        self.send_btn.config(state=tk.DISABLED if streaming else tk.NORMAL)
        self.stop_btn.config(state=tk.NORMAL if streaming else tk.DISABLED)
        if self.pending and not streaming:
            self.status.config(text=f"待发送附件: {self.pending}")

    def notify(self, message, level="info"):
        self.status.config(text=message)
        if level == "error":
            logger.warning(f"UI notice: {message}")

    # ---- 会话 ----

    def _selected_conv_id(self):
        sel = self.conv_list.curselection()
        if not sel:
            return self.current_id
        return self.conv_ids[sel[0]]

    def on_search(self, event):
        self.act(setattr, self.state, "search_query", self.search.get())

    def on_select_conv(self, event):
        sel = self.conv_list.curselection()
        if not sel:
            return
        cid = self.conv_ids[sel[0]]
        if cid != self.current_id:
            self.act(self.controller.switch_conversation, cid)

    def create_conv(self):
        self.act(self.controller.new_conversation)

    def pin_conv(self):
        cid = self._selected_conv_id()
        if cid:
            self.act(self.state.toggle_pin, cid)

    def delete_conv(self):
        cid = self._selected_conv_id()
        if cid and messagebox.askyesno("删除", "删除这个会话？"):
            self.act(self._delete_conversation, cid)

    def _delete_conversation(self, cid):
        if cid == self.state.current_id and self.state.streaming:
            self.controller.stop()
        self.state.delete_conversation(cid)

    def clear_conv(self):
        if self.current_id and messagebox.askyesno("清空", "清空当前会话的所有消息？"):
            self.act(self.state.clear_messages)

    # ---- 发送 ----

    def on_send(self):
        text = self.entry.get().strip()
        if not text and not self.pending:
            return
        self.entry.delete(0, tk.END)
        self.status.config(text="发送中...")
        self.worker.submit(self.controller.send_message(text))

    def on_send_event(self, event):
        self.on_send()
        return "break"

    def on_stop(self):
        self.worker.call(self.controller.stop)

    def attach_file(self):
        path = filedialog.askopenfilename()
        if path:
            self.status.config(text=f"正在处理 {Path(path).name}...")
            self.worker.submit(self._upload(path))

    async def _upload(self, path):
        await self.controller.upload_file(path)
        self.schedule_paint()

    # ---- 设置 ----

    def on_select_service(self, event):
        self.act(self._select_service, self.service.get())

    def _select_service(self, name):
        selected = self.state.select_service(name)
        self.notify_later(f"服务: {selected}")

    def on_select_template(self, event):
        name = self.template.get()
        if name and self.current_id:
            self.act(self._apply_template, name)

    def _apply_template(self, name):
        self.state.apply_template(name)
        self.notify_later(f"已应用模板: {name}")

    def edit_system_prompt(self):
        current = self.worker.query(lambda: self.state.current and self.state.current.system_prompt)
        if current is None:
            return
        prompt = simpledialog.askstring("系统提示词", "输入系统提示词：", initialvalue=current, parent=self.root)
        if prompt is not None:
            self.act(self.state.set_system_prompt, prompt)
            self.notify("系统提示词已保存")

    def open_settings(self):
        saved = self.worker.query(lambda: {k: (c.api_key, c.model) for k, c in self.state.api_keys.items()})
        win = tk.Toplevel(self.root)
        win.title("API 密钥")
        entries = {}
        for row, (kind, cfg) in enumerate(PROVIDER_REGISTRY.items()):
            api_key, model_name = saved[kind.value]
            tk.Label(win, text=cfg.name).grid(row=row, column=0, sticky=tk.W)
            key = tk.Entry(win, show="*", width=40)
            key.insert(0, api_key)
            key.grid(row=row, column=1)
            model = ttk.Combobox(win, values=cfg.models, width=36)
            model.set(model_name)
            model.grid(row=row, column=2)
            entries[kind] = (key, model)

        def save():
            values = {kind: (key.get(), model.get()) for kind, (key, model) in entries.items()}
            win.destroy()
            self.act(self._save_keys, values)
            self.worker.submit(self.load_services())

        tk.Button(win, text="保存", command=save).grid(row=len(entries), column=2, sticky=tk.E)

    def _save_keys(self, values):
        for kind, (key, model) in values.items():
            if key.strip():
                self.state.save_api_key(kind, key, model)
            else:
                self.state.clear_api_key(kind)
        self.notify_later("配置已保存 ✓", "success")

    # ---- 导入导出 ----

    def export_conv(self):
        fmt = simpledialog.askstring("导出", f"格式 ({'/'.join(EXPORT_FORMATS)})：", initialvalue="markdown", parent=self.root)
        if not fmt:
            return
        try:
            exported = self.worker.query(self._export, fmt.strip())
        except BusinessError as e:
            self.notify(e.message, "error")
            return
        if exported is None:
            self.notify("没有可导出的消息")
            return
        filename, _mime, content = exported
        path = filedialog.asksaveasfilename(initialfile=filename)
        if path:
            Path(path).write_text(content, encoding="utf-8")
            self.notify(f"已导出为 {Path(path).name} ✓", "success")

    def _export(self, fmt):
        conv = self.state.current
        if conv is None or not conv.messages:
            return None
        return export_conversation(conv, fmt)

    def import_conv(self):
        path = filedialog.askopenfilename(filetypes=[("JSON", "*.json")])
        if not path:
            return
        try:
            text = Path(path).read_text(encoding="utf-8")
        except OSError as e:
            self.notify(f"导入失败: {e}", "error")
            return
        self.act(import_conversation, self.state, text)


def main():
    root = tk.Tk()
    App(root)
    root.mainloop()


if __name__ == "__main__":
    main()
