"""
AcademyInsight 크롤러.

네이버 카페와 DC인사이드 갤러리에서 학원 언급 게시글을 수집하여
정규화·중복 제거 후 저장하는 수집 파이프라인.
"""

__version__ = "2.0.0"
