class ExternalURIs:
    FORMAT_DOCUMENT = "/format-document"
    DOCUMENT = "/document"
    QUEUE_STATUS = "/queue/status"
    DOWNLOAD = "/download"

    AUTH = "/auth"
    AUTH_ME = AUTH + "/me"
    AUTH_LOGIN = AUTH + "/login"
    AUTH_REGISTER = AUTH + "/register"
    AUTH_LOGOUT = AUTH + "/logout"

    @staticmethod
    def document_status(job_id: str) -> str:
        return f"{ExternalURIs.DOCUMENT}/{job_id}/status"

    @staticmethod
    def document_progress(job_id: str) -> str:
        return f"{ExternalURIs.DOCUMENT}/{job_id}/progress"

    @staticmethod
    def download(job_id: str) -> str:
        return f"{ExternalURIs.DOWNLOAD}/{job_id}"


class SchedulerKeys:
    QUEUE = "queue"

    @staticmethod
    def status(job_id: str) -> str:
        return f"status:{job_id}"

    @staticmethod
    def progress(job_id: str) -> str:
        return f"progress:{job_id}"
