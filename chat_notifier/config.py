from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Configuration settings for the chat notification function"""
    
    # Application settings
    service_name: str = "chat-notifier"
    log_level: str = "INFO"
    environment: str = "dev"
    
    # Firebase settings
    firebase_secret: Optional[str] = None  # service account JSON, falls back to ADC
    firebase_project_id: Optional[str] = None
    
    # Firestore layout
    chats_collection: str = "chats"
    users_collection: str = "users"
    tokens_field: str = "fcmTokens"
    
    # Notification settings
    default_sender_name: str = "Someone"
    notification_type: str = "new_message"
    android_priority: str = "high"
    
    # FCM batching settings
    fcm_batch_size: int = 500  # FCM allows up to 500 tokens per multicast request

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )


# Create settings instance
settings = Settings()
