"""Runner 核心：settings、重定向、launcher、supervisor、诊断日志。"""
