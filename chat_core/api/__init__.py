"""对外服务接口。"""
