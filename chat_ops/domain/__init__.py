"""领域层模型与协议。

包含：
- history: Message / ConversationDocument 及加载边界校验。
- mutator: 会话树追加算法 append_message。
- conversation: ChatRecord、ChatEvent 以及 ConversationStore / Notifier 抽象。
- exceptions: 业务异常类型定义。
"""
