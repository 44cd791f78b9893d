"""meetflow - 회의 라이프사이클 스케줄러 및 세션 연속성 관리"""

__version__ = "0.1.0"
