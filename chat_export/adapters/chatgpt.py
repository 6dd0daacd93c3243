from chat_export.adapters.base import SchemaProbe, SiteAdapter


class ChatGPTAdapter(SiteAdapter):
    name = "chatgpt"
    domains = ["chatgpt.com", "chat.openai.com"]
    share_prefix = "/share/"

    PAYLOAD_SELECTORS = (
        "script#__NEXT_DATA__",                         # Next.js page data, the usual home of the transcript
        'script[type="application/json"]',
        "script[data-state]",
    )
    ROLE_ATTRS = ("data-message-author-role", "data-turn-role")

    # Order matters: the first probe that yields turns wins.
    PROBES = (
        SchemaProbe("server_response", ("props", "pageProps", "serverResponse", "messages")),
        SchemaProbe("shared_mapping", ("props", "pageProps", "sharedConversation", "mapping")),
        SchemaProbe("state_messages", ("state", "conversation", "messages")),
        SchemaProbe("messages", ("messages",)),
        SchemaProbe("turns", ("turns",)),
    )
