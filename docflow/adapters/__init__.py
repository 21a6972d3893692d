"""Collaborator adapters.

Modules
-------
base
    ``RepositoryService``, ``ChangeProducer`` and ``TicketSystem`` protocols.
github
    ``GitHubRepository`` over the GitHub REST API.
gemini
    ``GeminiChangeProducer`` over the Generative Language API.
jira
    ``JiraTicketSystem`` over the Jira Cloud REST API.
memory
    ``InMemoryRepository``, a local repository for the demo and tests.
"""
