"""LangGraph 流水线编排。"""
