"""会话存储实现：sql_store 直连 Open WebUI 数据库，json_store 为本地文件存储。"""
