from typing import Dict, Optional

# Colours as published in GitHub linguist's languages.yml.
LANGUAGE_COLORS: Dict[str, str] = {
    "Assembly": "#6E4C13",
    "Astro": "#ff5a03",
    "C": "#555555",
    "C#": "#178600",
    "C++": "#f34b7d",
    "CSS": "#663399",
    "Clojure": "#db5855",
    "CoffeeScript": "#244776",
    "Dart": "#00B4AB",
    "Dockerfile": "#384d54",
    "Elixir": "#6e4a7e",
    "Elm": "#60B5CC",
    "Erlang": "#B83998",
    "F#": "#b845fc",
    "GDScript": "#355570",
    "Go": "#00ADD8",
    "HCL": "#844FBA",
    "HTML": "#e34c26",
    "Haskell": "#5e5086",
    "Java": "#b07219",
    "JavaScript": "#f1e05a",
    "Jupyter Notebook": "#DA5B0B",
    "Kotlin": "#A97BFF",
    "Lua": "#000080",
    "MDX": "#fcb32c",
    "Makefile": "#427819",
    "Nix": "#7e7eff",
    "OCaml": "#ef7a08",
    "Objective-C": "#438eff",
    "PHP": "#4F5D95",
    "Perl": "#0298c3",
    "PowerShell": "#012456",
    "Python": "#3572A5",
    "R": "#198CE7",
    "Ruby": "#701516",
    "Rust": "#dea584",
    "SCSS": "#c6538c",
    "Scala": "#c22d40",
    "Shell": "#89e051",
    "Svelte": "#ff3e00",
    "Swift": "#F05138",
    "TypeScript": "#3178c6",
    "Vue": "#41b883",
    "Zig": "#ec915c",
}

DEFAULT_LANGUAGE_COLOR = "#858585"


def get_language_color(language: Optional[str]) -> str:
    """Returns the display colour for a repository's primary language, or the fallback colour."""
    if not language:
        return DEFAULT_LANGUAGE_COLOR
    return LANGUAGE_COLORS.get(language, DEFAULT_LANGUAGE_COLOR)
