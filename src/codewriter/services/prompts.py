"""Prompt catalogue for the two generation flows."""

from __future__ import annotations

from typing import List


WEB_WRITER_SYSTEM_PROMPT = """You are an expert web developer. Generate HTML, CSS, and JavaScript code based on user requests.
Always organize your response with clear sections for each file type.
Format your response as follows:

<!-- HTML -->
<!DOCTYPE html>
<html>
<head>
    <title>Generated App</title>
</head>
<body>
...
</body>
</html>

/* CSS */
<style>
...
</style>

/* JavaScript */
<script>
...
</script>

Only generate code - no explanations unless specifically requested. Ensure the code is complete and functional.
When modifying existing code, provide the complete updated versions of all files."""


BUILDER_SYSTEM_PROMPT = """You are React Expert, an exceptional senior React developer with vast knowledge of React, JavaScript, TypeScript, and modern frontend development best practices.

When providing a solution, ALWAYS respond using the following format:

1. Wrap the whole answer in one <boltArtifact id="project-id" title="Project title"> element.
2. Wrap each file in <boltAction type="file" filePath="relative/path/to/file"> with the FULL file contents.
3. Put each shell command in <boltAction type="shell">command</boltAction>.
4. Do not include any explanatory text outside of the tags.

Example output format:
<boltArtifact id="counter-app" title="Counter App">
<boltAction type="file" filePath="src/components/Counter.jsx">
// Complete file contents here
</boltAction>
<boltAction type="shell">
npm run dev
</boltAction>
</boltArtifact>

CRITICAL REQUIREMENTS:
- Provide FULL file contents, never partial diffs
- Use correct relative file paths
- Use 2 spaces for code indentation
- Ensure code is production-ready"""


BASE_PROMPT = (
    "For all designs I ask you to make, have them be beautiful, not cookie cutter. "
    "Make React components that are fully featured and worthy for production.\n\n"
    "By default, this template supports JSX syntax with Tailwind CSS classes, React hooks, "
    "and Lucide React for icons. Do not install other packages for UI themes, icons, etc "
    "unless absolutely necessary or I request them.\n\n"
    "Use icons from lucide-react for logos.\n\n"
    "Use stock photos from unsplash where appropriate, only valid URLs you know exist. "
    "Do not download the images, only link to them in image tags.\n\n"
)


CONTINUE_PROMPT = (
    "Continue your prior response. IMPORTANT: Immediately begin from where you left off "
    "without any interruptions.\n"
    "Do not repeat any content, including artifact and action tags.\n"
)


REACT_TEMPLATE_ARTIFACT = """<boltArtifact id="project-import" title="Project Files">
<boltAction type="file" filePath="package.json">
{
  "name": "vite-react-typescript-starter",
  "private": true,
  "version": "0.0.0",
  "type": "module",
  "scripts": {
    "dev": "vite",
    "build": "vite build",
    "preview": "vite preview"
  },
  "dependencies": {
    "lucide-react": "^0.344.0",
    "react": "^18.3.1",
    "react-dom": "^18.3.1"
  },
  "devDependencies": {
    "@vitejs/plugin-react": "^4.3.1",
    "autoprefixer": "^10.4.18",
    "postcss": "^8.4.35",
    "tailwindcss": "^3.4.1",
    "vite": "^5.4.2"
  }
}
</boltAction>
<boltAction type="file" filePath="index.html">
<!doctype html>
<html lang="en">
  <head>
    <meta charset="UTF-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1.0" />
    <title>Vite + React</title>
  </head>
  <body>
    <div id="root"></div>
    <script type="module" src="/src/main.jsx"></script>
  </body>
</html>
</boltAction>
<boltAction type="file" filePath="vite.config.js">
import { defineConfig } from 'vite';
import react from '@vitejs/plugin-react';

export default defineConfig({
  plugins: [react()],
});
</boltAction>
<boltAction type="file" filePath="tailwind.config.js">
/** @type {import('tailwindcss').Config} */
export default {
  content: ['./index.html', './src/**/*.{js,jsx}'],
  theme: {
    extend: {},
  },
  plugins: [],
};
</boltAction>
<boltAction type="file" filePath="postcss.config.js">
export default {
  plugins: {
    tailwindcss: {},
    autoprefixer: {},
  },
};
</boltAction>
<boltAction type="file" filePath="src/main.jsx">
import { StrictMode } from 'react';
import { createRoot } from 'react-dom/client';
import App from './App.jsx';
import './index.css';

createRoot(document.getElementById('root')).render(
  <StrictMode>
    <App />
  </StrictMode>
);
</boltAction>
<boltAction type="file" filePath="src/App.jsx">
function App() {
  return (
    <div className="min-h-screen bg-gray-100 flex items-center justify-center">
      <p>Start prompting (or editing) to see magic happen :)</p>
    </div>
  );
}

export default App;
</boltAction>
<boltAction type="file" filePath="src/index.css">
@tailwind base;
@tailwind components;
@tailwind utilities;
</boltAction>
</boltArtifact>"""


HIDDEN_TEMPLATE_FILES = (".gitignore", "package-lock.json")


def template_prompts() -> List[str]:
    """Prompts a builder conversation starts with, before the user's request."""

    hidden = "\n".join(f"  - {name}" for name in HIDDEN_TEMPLATE_FILES)
    project_context = (
        "Here is an artifact that contains all files of the project visible to you.\n"
        "Consider the contents of ALL files in the project.\n\n"
        f"{REACT_TEMPLATE_ARTIFACT}\n\n"
        "Here is a list of files that exist on the file system but are not being shown to you:\n\n"
        f"{hidden}\n"
    )
    return [BASE_PROMPT, project_context]


def ui_prompts() -> List[str]:
    return [REACT_TEMPLATE_ARTIFACT]
