"""도메인 예외."""


class AdWatchError(Exception):
    """수집 파이프라인 공통 예외."""


class CompetitorNotFound(AdWatchError):
    """존재하지 않는 경쟁사 -- 재시도해도 소용없음."""

    def __init__(self, competitor_id: int):
        super().__init__(f"Competitor with ID {competitor_id} not found")
        self.competitor_id = competitor_id


class ScrapeTimeout(AdWatchError):
    """작업 제한시간 초과."""

    def __init__(self, competitor_id: int, seconds: float):
        super().__init__(f"Scrape of competitor {competitor_id} exceeded {seconds:.0f}s")
        self.competitor_id = competitor_id
        self.seconds = seconds
