"""Chatroom and channel identifier discovery."""
