"""chat_ops 顶层包。

面向运维的 Open WebUI 会话工具：直接读写服务端数据库中的会话树，
追加消息、切换输入框状态，并通过 Socket.IO 总线或 HTTP 接口通知在线前端。
"""
