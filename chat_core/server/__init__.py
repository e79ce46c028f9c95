"""Relay Server：浏览器/客户端与各 Provider 之间的 HTTP + SSE 转发层。"""
