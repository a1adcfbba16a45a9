import openai


def create_openai_client(api_key: str, base_url: str | None = None) -> openai.AsyncOpenAI:
    return openai.AsyncOpenAI(api_key=api_key, base_url=base_url or None)
