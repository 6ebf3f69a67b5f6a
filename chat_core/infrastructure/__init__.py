"""基础设施：日志等。"""
