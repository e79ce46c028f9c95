"""NeuralChat 核心包。

该包提供多 Provider 聊天应用的全部实现：配置加载、领域模型、
Provider 适配与选择、上传处理、Relay HTTP 服务，以及客户端的
状态、流式读取、渲染与 Tk 控制台。
"""
