"""渲染层：视图数据与 tkinter 窗口。"""
