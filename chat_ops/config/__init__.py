"""配置加载与 WEBUI_SECRET_KEY 解析。"""
