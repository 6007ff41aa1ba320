from course_assistant.application.use_cases.chat import ChatUseCase, build_system_prompt

__all__ = ["ChatUseCase", "build_system_prompt"]
