"""Messaging module router aggregation."""
from coursechat.routers import course_socket, messages, uploads

ROUTERS = [messages.router, uploads.router, course_socket.router]
