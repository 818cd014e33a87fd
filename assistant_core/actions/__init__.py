"""动作语法定义、处理函数与分发执行。"""
