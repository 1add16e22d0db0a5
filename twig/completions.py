"""
Shell completion scripts for the Twig CLI.

Each constant contains a complete shell completion script
that can be eval'd or sourced by the user's shell.
"""

BASH_COMPLETION = r"""
_twig_completions() {
    local cur prev commands global_flags
    COMPREPLY=()
    cur="${COMP_WORDS[COMP_CWORD]}"
    prev="${COMP_WORDS[COMP_CWORD-1]}"

    commands="init add commit rm log global-log find status branch rm-branch checkout reset merge doctor completion"
    global_flags="--json -j --path -C --verbose -v --quiet -q --version -V"

    case "${prev}" in
        add|rm|--)
            COMPREPLY=( $(compgen -f -- "${cur}") )
            return 0
            ;;
        doctor)
            COMPREPLY=( $(compgen -W "--fix" -- "${cur}") )
            return 0
            ;;
        completion)
            COMPREPLY=( $(compgen -W "bash zsh" -- "${cur}") )
            return 0
            ;;
        twig)
            COMPREPLY=( $(compgen -W "${commands} ${global_flags}" -- "${cur}") )
            return 0
            ;;
    esac

    if [[ "${cur}" == -* ]]; then
        COMPREPLY=( $(compgen -W "${global_flags}" -- "${cur}") )
    else
        COMPREPLY=( $(compgen -W "${commands}" -- "${cur}") )
    fi
}
complete -F _twig_completions twig
"""

ZSH_COMPLETION = r"""
#compdef twig

_twig() {
    local -a commands global_flags shell_types

    commands=(
        'init:Initialize a new repository'
        'add:Stage a file for addition'
        'commit:Commit staged changes'
        'rm:Unstage a file or stage it for removal'
        'log:Show the active branch history'
        'global-log:Show every commit'
        'find:Find commits by message'
        'status:Show branches and staged files'
        'branch:Create a branch'
        'rm-branch:Delete a branch'
        'checkout:Restore a file or switch branches'
        'reset:Move the active branch to a commit'
        'merge:Check whether a branch can be merged'
        'doctor:Check repository integrity'
        'completion:Print a shell completion script'
    )

    global_flags=(
        '--json[JSON output]'
        '-j[JSON output]'
        '--path[Repository path]:path:_directories'
        '-C[Repository path]:path:_directories'
        '--verbose[Verbose output]'
        '-v[Verbose output]'
        '--quiet[Quiet output]'
        '-q[Quiet output]'
    )

    shell_types=(bash zsh)

    if (( CURRENT == 2 )); then
        _describe 'command' commands
        _arguments $global_flags
        return
    fi

    case "${words[2]}" in
        add|rm)
            _files
            ;;
        doctor)
            compadd -- --fix
            ;;
        completion)
            _describe 'shell' shell_types
            ;;
    esac
}

_twig "$@"
"""
