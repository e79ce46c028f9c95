"""NeuralChat 客户端核心。

与 UI 无关的部分都在这里：本地状态与持久化 (state/storage)、
发给模型的内容拼装 (content)、Relay 的 HTTP/SSE 客户端 (streaming)、
单轮对话的状态机 (controller)、纯函数渲染 (view) 以及导入导出 (export)。
"""
