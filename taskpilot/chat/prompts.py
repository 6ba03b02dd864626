# -*- coding: utf-8 -*-
"""
固定的提示词与消息文本
"""

SYSTEM_PROMPT = """You are taskpilot, a specialized assistant that helps users manage tasks and project requirements.
Your responsibilities include:
- Helping users track their tasks and project status
- Creating, updating, and organizing tasks
- Providing summaries and reports on project progress
- Offering suggestions for task prioritization

Always be concise, helpful, and focus on task management. If asked about topics unrelated to task management,
politely redirect the conversation back to task-related discussions."""

# 补全服务无法回答时原样返回
HELP_MESSAGE = """I can't reach the language model right now, but these commands always work:

- Initialize task tracking for this project
- Create a task to [description]
- Create a high priority task to [description]
- List all tasks
- What tasks are high priority?
- Mark task TASK-001 as complete
- Mark task TASK-001 as high priority
- Scan for TODOs in the codebase
- Parse requirements.md and create tasks
- Break TASK-001 into subtasks
- What task should I work on next?
- Prioritize tasks
- Enrich task TASK-001
- Export tasks as markdown"""

GENERAL_HELP = """# taskpilot Help

I help you manage tasks in your project. Here are the features I support:

## Task Management
- **Initialize tracking**: `Initialize task tracking for this project`
- **Create tasks**: `Create a task to implement user authentication`
- **Create priority tasks**: `Create a high priority task to fix security issue`
- **List tasks**: `List all tasks`
- **Filter tasks**: `What tasks are high priority?`
- **Complete tasks**: `Mark task TASK-001 as complete`
- **Update priority**: `Mark task TASK-001 as high priority`

## Advanced Features
- **Scan TODOs**: `Scan for TODOs in the codebase`
- **Parse requirements**: `Parse requirements.md and create tasks`
- **Task decomposition**: `Break TASK-001 into subtasks`
- **Next task**: `What task should I work on next?`
- **Sort tasks**: `Prioritize tasks`
- **Add context**: `Enrich task TASK-001`
- **Export**: `Export tasks as csv to out/tasks.csv`

## Task Storage
- **tasks.json**: master index of all tasks
- **TASK-XXX.md**: one generated file per task"""

# 按顺序检查，问题中第一个命中关键词的功能胜出
FEATURE_KEYWORDS = [
    ("task-creation", ["create task", "create a task", "add task", "add a task", "new task", "task creation"]),
    ("task-listing", ["list task", "show task", "view task", "list all task", "task list"]),
    ("task-completion", ["complete task", "mark done", "finish task", "mark as complete", "mark completed",
                         "complete a task"]),
    ("task-priority", ["priority", "priorities", "prioritize"]),
    ("todo-scanning", ["scan todo", "find todo", "scan for todo", "todo scanning", "convert todo", "todos"]),
    ("requirements-parsing", ["parse requirement", "requirement document", "parse doc", "extract task",
                              "requirements"]),
    ("task-decomposition", ["subtask", "break down", "decompose task", "split task"]),
    ("next-task", ["next task", "what to work on", "suggest task", "recommend task"]),
    ("task-enrichment", ["enrich", "more context"]),
    ("task-export", ["export"]),
    ("task-initialization", ["initialize", "initialise", "setup", "set up", "start tracking"]),
]

FEATURE_HELP = {
    "task-creation": """## Task Creation

- **Basic**: `Create a task to implement user authentication`
- **With priority**: `Create a high priority task to fix the login page`
- **Priority levels**: low, medium, high, critical

New tasks get the next free TASK-NNN id and are saved to `tasks/tasks.json`.""",
    "task-listing": """## Listing Tasks

- **Everything**: `List all tasks`
- **By priority**: `Show high priority tasks` or `What tasks are high priority?`
- **By status**: `Show completed tasks`, `List open tasks`, `Show tasks that are in progress`

Open tasks are listed before completed ones, highest priority first.""",
    "task-completion": """## Completing Tasks

- `Mark task TASK-001 as complete`

Completed tasks keep their history and move to the completed section of listings.""",
    "task-priority": """## Task Priority

- **On creation**: `Create a critical priority task to patch the parser`
- **Change it later**: `Mark task TASK-001 as high priority` or `Change the priority of TASK-001 to low`
- **Query**: `What tasks are high priority?`
- **Sort**: `Prioritize tasks`

Priority levels from lowest to highest: low, medium, high, critical.""",
    "todo-scanning": """## TODO Scanning

- **Whole workspace**: `Scan for TODOs in the codebase`
- **Narrowed**: `Scan for TODOs in src/**/*.py`

Each TODO comment becomes a task that remembers its file and line.
A hint such as `TODO(high):` sets the priority.""",
    "requirements-parsing": """## Requirements Parsing

- `Parse requirements.md and create tasks`
- `Parse "docs/product plan.md" and create tasks`

Needs a language model. Each extracted requirement becomes a task linked to the document.""",
    "task-decomposition": """## Task Decomposition

- `Break TASK-001 into subtasks`
- `Split TASK-001 into smaller tasks`

Needs a language model. Subtasks are created as new tasks and linked to their parent.""",
    "next-task": """## Next Task

- `What task should I work on next?`

Suggests the open task with the highest priority and says how many others share it.""",
    "task-enrichment": """## Task Enrichment

- `Enrich task TASK-001`

Reads the code around a TODO, or the section around a requirement, and writes a fuller description.""",
    "task-export": """## Exporting Tasks

- `Export tasks` (markdown)
- `Export tasks as json` or `Export tasks as csv to out/tasks.csv`

Without a target the export is written to `tasks-export.<format>` in the workspace root.""",
    "task-initialization": """## Initializing Task Tracking

- `Initialize task tracking for this project`

Creates the `tasks` directory with `tasks.json` and a `README.md`.""",
}

MODEL_ABORTED_MESSAGE = "The model call was aborted before it finished. Send the message again to retry."

UNEXPECTED_ERROR_MESSAGE = "Sorry, something went wrong while handling that request. Check the log for details."

REQUIREMENTS_EXTRACTION_PROMPT = """Extract actionable requirements from the following document.

Return ONLY a JSON array of objects with this shape:
[
  {
    "description": "A short, actionable requirement",
    "priority": "critical" | "high" | "medium" | "low"
  }
]

Use "medium" when the document does not indicate a priority.
If the document contains no requirements, return an empty array []."""

DECOMPOSITION_PROMPT = """Analyze the following task and determine if it can be broken down into subtasks.
If it's a complex task that should be decomposed, suggest 3-7 logical subtasks that would help complete it.
Each subtask should be:
1. Specific and actionable
2. A logical step toward completing the parent task
3. Something that can be worked on independently

For each subtask, determine an appropriate priority relative to the parent task's priority of {priority}.

Return the results as a JSON array with objects containing:
{{
  "description": "The subtask description",
  "priority": "high" | "medium" | "low" | "critical"
}}

If the task is already atomic and shouldn't be broken down further, return an empty array."""

ENRICHMENT_PROMPT = """You are given a task and the {kind} it came from.
Write an improved task description in two or three sentences: what needs to be done,
where, and what "done" looks like. Reply with the description only."""
