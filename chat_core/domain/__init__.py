"""领域层模型与协议。

包含：
- models: 统一的 ChatMessage / UploadDescriptor 模型。
- conversation: 客户端会话、消息、附件模型及 KeyValueStorage 协议。
- exceptions: 业务异常类型定义。
"""
