"""对外函数接口。"""
